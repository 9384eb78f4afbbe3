import pytest

from directory_sync.sync.fetcher import GroupFetcher, GroupMemberFetcher, TableScanFetcher, UserFetcher
from tests.fixtures.clients import CognitoStub, TableStub, client_error, directory_user


def test_user_fetcher_pages_and_skips_external_provider_users() -> None:
    """
    Given: 두 페이지의 사용자, 그 중 외부 IdP 사용자 포함
    When: 페이지를 순서대로 조회
    Then: 외부 사용자 제외, 마지막 페이지의 토큰은 None
    """
    cognito = CognitoStub(
        users=[
            [directory_user("alice", "s-1"), directory_user("fed", "s-2", status="EXTERNAL_PROVIDER")],
            [directory_user("bob", "s-3")],
        ]
    )
    fetcher = UserFetcher(cognito, "pool-1")

    first = fetcher.fetch_page()
    second = fetcher.fetch_page(first.next_token)

    assert [u["Username"] for u in first.items] == ["alice"]
    assert first.next_token == "1"
    assert [u["Username"] for u in second.items] == ["bob"]
    assert second.next_token is None
    assert cognito.calls_to("list_users")[1]["PaginationToken"] == "1"


def test_empty_page_with_token_keeps_pagination_alive() -> None:
    """
    Given: 외부 사용자만 있는 페이지 뒤에 다른 페이지
    When: 첫 페이지 조회
    Then: 항목은 비어도 다음 토큰 반환
    """
    cognito = CognitoStub(
        users=[[directory_user("fed", "s-1", status="EXTERNAL_PROVIDER")], [directory_user("bob", "s-2")]]
    )

    page = UserFetcher(cognito, "pool-1").fetch_page()

    assert page.items == []
    assert page.next_token == "1"


def test_group_and_member_fetchers_use_next_token() -> None:
    """
    Given: 그룹 2페이지, 그룹 멤버 1페이지
    When: 조회
    Then: NextToken 사용, 그룹명 전달
    """
    cognito = CognitoStub(
        groups=[[{"GroupName": "admins"}], [{"GroupName": "staff"}]],
        members={"admins": [[directory_user("alice", "s-1")]]},
    )

    groups = GroupFetcher(cognito, "pool-1").fetch_page()
    more = GroupFetcher(cognito, "pool-1").fetch_page(groups.next_token)
    members = GroupMemberFetcher(cognito, "pool-1", "admins").fetch_page()

    assert [g["GroupName"] for g in groups.items + more.items] == ["admins", "staff"]
    assert cognito.calls_to("list_groups")[1]["NextToken"] == "1"
    assert cognito.calls_to("list_users_in_group")[0]["GroupName"] == "admins"
    assert members.next_token is None


def test_table_scan_fetcher_passes_exclusive_start_key() -> None:
    """
    Given: 두 페이지 스캔 결과와 필터 인자
    When: LastEvaluatedKey로 재개
    Then: ExclusiveStartKey와 필터가 함께 전달
    """
    table = TableStub("backup-table", scan_pages=[[{"id": "a"}], [{"id": "b"}]])
    fetcher = TableScanFetcher(table, {"ProjectionExpression": "id"})

    first = fetcher.fetch_page()
    second = fetcher.fetch_page(first.next_token)

    assert second.items == [{"id": "b"}]
    assert table.scan_calls[1] == {"ProjectionExpression": "id", "ExclusiveStartKey": {"page": "1"}}


def test_listing_retries_throttling() -> None:
    """
    Given: 한 번 스로틀링되는 ListUsers
    When: fetch_page
    Then: 백오프 후 성공
    """
    sleeps = []
    cognito = CognitoStub(
        users=[[directory_user("alice", "s-1")]],
        errors={"list_users": [client_error("TooManyRequestsException")]},
    )

    page = UserFetcher(cognito, "pool-1", sleep=sleeps.append).fetch_page()

    assert [u["Username"] for u in page.items] == ["alice"]
    assert sleeps == [200]


def test_listing_propagates_fatal_errors() -> None:
    """
    Given: 재시도 불가 오류
    When: fetch_page
    Then: 그대로 전파
    """
    cognito = CognitoStub(errors={"list_groups": [client_error("ResourceNotFoundException")]})

    with pytest.raises(Exception) as info:
        GroupFetcher(cognito, "pool-1").fetch_page()

    assert "ResourceNotFoundException" in str(info.value)
