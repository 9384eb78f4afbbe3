import pytest

from directory_sync.models.events import TaskContext
from directory_sync.models.settings import EnvSettings
from directory_sync.notifications import Notifier
from directory_sync.tasks.broker import MessageBroker, execution_seconds
from tests.fixtures.clients import DynamoDBResourceStub, HttpStub, SnsStub


def _context(state: str, machine: str = "ExportWorkflow-abc123") -> TaskContext:
    return TaskContext.model_validate(
        {
            "Execution": {"Id": "arn:exec-1", "StartTime": "2024-01-01T00:00:00.000Z"},
            "State": {"Name": state, "EnteredTime": "2024-01-01T00:01:30.000Z"},
            "StateMachine": {"Id": "arn:sm", "Name": machine},
        }
    )


def _broker(settings, *, sns=None, http=None, dynamodb=None):
    notifier = Notifier(settings, sns_client=sns or SnsStub(), http=http or HttpStub())
    return MessageBroker(settings=settings, dynamodb=dynamodb or DynamoDBResourceStub(), notifier=notifier)


def test_execution_seconds() -> None:
    """
    Given: 실행 시작과 상태 진입 시각
    When: execution_seconds
    Then: 경과 초, 시각이 없으면 -1
    """
    assert execution_seconds(_context("WorkflowCleanupLambda")) == 90.0
    assert execution_seconds(TaskContext()) == -1


def test_error_state_publishes_parsed_cause(settings) -> None:
    """
    Given: JSON Cause를 가진 오류 상태 입력
    When: handle
    Then: 파싱된 오류를 포함한 알림 게시
    """
    sns = SnsStub()

    _broker(settings, sns=sns).handle(
        _context("WorkflowErrorHandlerLambda"), {"Cause": '{"errorMessage": "boom"}'}
    )

    message = sns.published[0]["Message"]
    assert "while executing the ExportWorkflow-abc123" in message
    assert '"errorMessage": "boom"' in message


def test_error_state_with_plain_cause(settings) -> None:
    """
    Given: JSON이 아닌 Cause
    When: handle
    Then: 원문 그대로 포함
    """
    sns = SnsStub()

    _broker(settings, sns=sns).handle(_context("Parallel: WorkflowErrorHandlerLambda"), {"Cause": "timed out"})

    assert '"timed out"' in sns.published[0]["Message"]


def test_export_cleanup_records_latest_timestamp(settings) -> None:
    """
    Given: 내보내기 워크플로 정리 상태
    When: handle
    Then: 타임스탬프 마커 저장과 성공 알림
    """
    sns = SnsStub()
    dynamodb = DynamoDBResourceStub()

    _broker(settings, sns=sns, dynamodb=dynamodb).handle(_context("WorkflowCleanupLambda"), {"ExportTimestamp": 1234})

    assert dynamodb.table.items == [
        {"id": "latest-export-timestamp", "type": "timestamp", "latestExportTimestamp": 1234}
    ]
    assert "completed successfully. Execution took 90.0 second(s)" in sns.published[0]["Message"]


def test_success_notification_respects_preference(monkeypatch) -> None:
    """
    Given: SNS_MESSAGE_PREFERENCE=ERRORS_ONLY
    When: 가져오기 워크플로 정리
    Then: 성공 알림 없음
    """
    monkeypatch.setenv("SNS_MESSAGE_PREFERENCE", "ERRORS_ONLY")
    sns = SnsStub()
    dynamodb = DynamoDBResourceStub()

    _broker(EnvSettings.load(), sns=sns, dynamodb=dynamodb).handle(
        _context("WorkflowCleanupLambda", "ImportWorkflow-x"), {}
    )

    assert sns.published == []
    assert dynamodb.table.items == []


@pytest.mark.parametrize("machine, sent", [("ImportWorkflow-x", True), ("OtherWorkflow-x", False)])
def test_cleanup_metric_only_for_known_workflows(monkeypatch, machine, sent) -> None:
    """
    Given: SEND_METRIC=Yes
    When: 정리 상태 처리
    Then: 알려진 워크플로만 완료 지표 전송
    """
    monkeypatch.setenv("SEND_METRIC", "Yes")
    http = HttpStub()

    _broker(EnvSettings.load(), http=http).handle(_context("WorkflowCleanupLambda", machine), {})

    assert bool(http.calls) is sent
    if sent:
        data = http.calls[0][2]["json"]["Data"]
        assert data["EventType"] == "workflow-finished"
        assert data["EventDetails"]["WorkflowName"] == "ImportWorkflow"


def test_unknown_state_does_nothing(settings) -> None:
    """
    Given: 알 수 없는 상태 이름
    When: handle
    Then: 알림 없음
    """
    sns = SnsStub()

    _broker(settings, sns=sns).handle(_context("SomethingElse"), {})

    assert sns.published == []
