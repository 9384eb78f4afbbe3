import pytest

from directory_sync.sync.batch_writer import BatchWriter
from directory_sync.sync.deadline import DeadlineGovernor
from directory_sync.sync.rate_limiter import RateLimiter
from directory_sync.tasks.updates import NewUserUpdater
from tests.fixtures.clients import CognitoStub, SQSStub, client_error, queue_message
from tests.fixtures.timing import FakeClock, FakeLambdaContext


pytestmark = [pytest.mark.import_workflow]

NEW_POOL = "us-east-1_New"


def _membership(group: str, username: str):
    return {
        "id": f"GROUP_MEMBER-{group}",
        "type": f"GROUP_MEMBER-{username}-sub",
        "groupName": group,
        "groupPseudoUsername": username,
    }


def _disabled_user(username: str):
    return {"id": f"USER-{username}-sub", "type": "user", "pseudoUsername": username, "userEnabled": False}


def _updater(settings, *, cognito=None, sqs=None, governor=None, ceiling=10, clock=None):
    clock = clock or FakeClock()
    return NewUserUpdater(
        cognito=cognito or CognitoStub(),
        sqs=sqs or SQSStub(),
        settings=settings,
        governor=governor or DeadlineGovernor.unbounded(),
        new_user_pool_id=NEW_POOL,
        limiter=RateLimiter(ceiling, clock=clock, sleep=clock.sleep),
        writer=BatchWriter(sleep=clock.sleep),
        receive_wait_seconds=0,
        sleep=clock.sleep,
    )


def test_updates_are_applied_then_deleted(settings) -> None:
    """
    Given: 멤버십 1건과 비활성 사용자 1건
    When: UpdateNewUsers 상태 실행
    Then: 그룹 추가와 사용자 비활성화 후 메시지 삭제, 빈 큐 확인
    """
    sqs = SQSStub(receive_pages=[[queue_message(_membership("admins", "alice"), 1), queue_message(_disabled_user("bob"), 2)]])
    cognito = CognitoStub()

    result = _updater(settings, cognito=cognito, sqs=sqs).run("UpdateNewUsers", {"Carry": 1})

    assert result == {"result": {"Carry": 1, "StateName": "UpdateNewUsers", "QueueEmpty": True}}
    assert cognito.calls_to("admin_add_user_to_group") == [
        {"UserPoolId": NEW_POOL, "GroupName": "admins", "Username": "alice"}
    ]
    assert cognito.calls_to("admin_disable_user") == [{"UserPoolId": NEW_POOL, "Username": "bob"}]
    assert [e["Id"] for e in sqs.deleted[0]] == ["m-1", "m-2"]
    assert len(sqs.receive_calls) == 2


def test_each_call_is_accounted_against_the_ceiling(settings) -> None:
    """
    Given: 초당 2회 상한과 업데이트 5건
    When: 업데이트 적용
    Then: 세 번째와 다섯 번째 호출 전에 다음 윈도까지 대기
    """
    clock = FakeClock()
    messages = [queue_message(_membership("admins", f"u{i}"), i) for i in range(5)]
    cognito = CognitoStub()

    _updater(settings, cognito=cognito, sqs=SQSStub(receive_pages=[messages]), ceiling=2, clock=clock).update_new_users()

    assert len(cognito.calls_to("admin_add_user_to_group")) == 5
    assert clock.sleeps == [1001, 1001]


def test_throttled_update_is_retried_with_jitter(settings) -> None:
    """
    Given: 한 번 스로틀링되는 그룹 추가
    When: 업데이트 적용
    Then: 지터 백오프 후 재시도
    """
    clock = FakeClock()
    cognito = CognitoStub(errors={"admin_add_user_to_group": [client_error("TooManyRequestsException")]})
    sqs = SQSStub(receive_pages=[[queue_message(_membership("admins", "alice"), 1)]])

    _updater(settings, cognito=cognito, sqs=sqs, clock=clock).update_new_users()

    assert len(cognito.calls_to("admin_add_user_to_group")) == 2
    assert len(clock.sleeps) == 1
    assert 1 <= clock.sleeps[0] <= 200
    assert len(sqs.deleted) == 1


def test_failed_update_keeps_messages_on_the_queue(settings) -> None:
    """
    Given: 재시도 불가 오류로 실패하는 그룹 추가
    When: 업데이트 적용
    Then: 오류 전파, 메시지는 삭제되지 않음
    """
    cognito = CognitoStub(errors={"admin_add_user_to_group": [client_error("UserNotFoundException")]})
    sqs = SQSStub(receive_pages=[[queue_message(_membership("admins", "ghost"), 1)]])

    with pytest.raises(Exception, match="UserNotFoundException"):
        _updater(settings, cognito=cognito, sqs=sqs).update_new_users()

    assert sqs.deleted == []


def test_update_stops_at_deadline(settings) -> None:
    """
    Given: 첫 배치 처리 후 남은 시간 부족
    When: 업데이트 적용
    Then: QueueEmpty=False로 반환
    """
    sqs = SQSStub(
        receive_pages=[[queue_message(_membership("a", "u1"), 1)], [queue_message(_membership("a", "u2"), 2)]]
    )
    governor = DeadlineGovernor.from_context(FakeLambdaContext(10_000))

    result = _updater(settings, sqs=sqs, governor=governor).update_new_users()

    assert result.queue_empty is False
    assert len(sqs.receive_calls) == 1
