"""Single-page readers over the directory listing APIs and backup table scans.

Each fetcher turns an opaque continuation token into one :class:`Page`; a
``next_token`` of None means the source is exhausted. Tokens are specific to
the fetcher that produced them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from directory_sync.sync.deadline import DeadlineGovernor
from directory_sync.sync.retry import RetryPolicy
from directory_sync.utils.clock import sleep_ms
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

EXTERNAL_PROVIDER_STATUS = "EXTERNAL_PROVIDER"
LISTING_RETRY = RetryPolicy(base_ms=100, max_ms=60 * 1000)


@dataclass
class Page:
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_token: Optional[Any] = None


def is_externally_managed(user: Mapping[str, Any]) -> bool:
    """Federated users belong to a third-party identity provider and are never exported."""
    return user.get("UserStatus") == EXTERNAL_PROVIDER_STATUS


class PaginatedFetcher:
    description = "listing"

    def __init__(
        self,
        *,
        governor: Optional[DeadlineGovernor] = None,
        retry_policy: RetryPolicy = LISTING_RETRY,
        sleep: Callable[[float], None] = sleep_ms,
    ) -> None:
        self._governor = governor or DeadlineGovernor.unbounded()
        self._retry = retry_policy
        self._sleep = sleep

    def fetch_page(self, token: Optional[Any] = None, *, on_attempt: Optional[Callable[[], None]] = None) -> Page:
        """Read one page; ``on_attempt`` runs before every request, retries included."""

        def _attempt() -> Mapping[str, Any]:
            if on_attempt is not None:
                on_attempt()
            return self._request(token)

        response = self._retry.run(
            _attempt,
            governor=self._governor,
            sleep=self._sleep,
            description=self.description,
        )
        items = [i for i in self._items(response) if self._keep(i)]
        next_token = self._next_token(response) or None
        return Page(items=items, next_token=next_token)

    def _request(self, token: Optional[Any]) -> Mapping[str, Any]:
        raise NotImplementedError

    def _items(self, response: Mapping[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def _next_token(self, response: Mapping[str, Any]) -> Optional[Any]:
        raise NotImplementedError

    def _keep(self, item: Mapping[str, Any]) -> bool:
        return True


class UserFetcher(PaginatedFetcher):
    """``cognito-idp:ListUsers``."""

    description = "list_users"

    def __init__(self, cognito: Any, user_pool_id: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._cognito = cognito
        self._user_pool_id = user_pool_id

    def _request(self, token: Optional[Any]) -> Mapping[str, Any]:
        params: Dict[str, Any] = {"UserPoolId": self._user_pool_id}
        if token:
            params["PaginationToken"] = token
        logger.info("Listing users", extra={"user_pool_id": self._user_pool_id, "resume": bool(token)})
        return self._cognito.list_users(**params)

    def _items(self, response: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return list(response.get("Users") or [])

    def _next_token(self, response: Mapping[str, Any]) -> Optional[Any]:
        return response.get("PaginationToken")

    def _keep(self, item: Mapping[str, Any]) -> bool:
        return not is_externally_managed(item)


class GroupMemberFetcher(UserFetcher):
    """``cognito-idp:ListUsersInGroup``."""

    description = "list_users_in_group"

    def __init__(self, cognito: Any, user_pool_id: str, group_name: str, **kwargs: Any) -> None:
        super().__init__(cognito, user_pool_id, **kwargs)
        self._group_name = group_name

    def _request(self, token: Optional[Any]) -> Mapping[str, Any]:
        params: Dict[str, Any] = {"UserPoolId": self._user_pool_id, "GroupName": self._group_name}
        if token:
            params["NextToken"] = token
        logger.info("Listing users in group", extra={"group_name": self._group_name, "resume": bool(token)})
        return self._cognito.list_users_in_group(**params)

    def _next_token(self, response: Mapping[str, Any]) -> Optional[Any]:
        return response.get("NextToken")


class GroupFetcher(PaginatedFetcher):
    """``cognito-idp:ListGroups``."""

    description = "list_groups"

    def __init__(self, cognito: Any, user_pool_id: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._cognito = cognito
        self._user_pool_id = user_pool_id

    def _request(self, token: Optional[Any]) -> Mapping[str, Any]:
        params: Dict[str, Any] = {"UserPoolId": self._user_pool_id}
        if token:
            params["NextToken"] = token
        logger.info("Listing groups", extra={"user_pool_id": self._user_pool_id, "resume": bool(token)})
        return self._cognito.list_groups(**params)

    def _items(self, response: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return list(response.get("Groups") or [])

    def _next_token(self, response: Mapping[str, Any]) -> Optional[Any]:
        return response.get("NextToken")


class TableScanFetcher(PaginatedFetcher):
    """``Table.scan`` with an optional filter; the token is the LastEvaluatedKey."""

    description = "scan"

    def __init__(self, table: Any, scan_kwargs: Optional[Dict[str, Any]] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._table = table
        self._scan_kwargs = dict(scan_kwargs or {})

    def _request(self, token: Optional[Any]) -> Mapping[str, Any]:
        params = dict(self._scan_kwargs)
        if token:
            params["ExclusiveStartKey"] = token
        resp = self._table.scan(**params)
        logger.info(
            "Scanned backup table",
            extra={"count": resp.get("Count", 0), "scanned_count": resp.get("ScannedCount", 0)},
        )
        return resp

    def _items(self, response: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return list(response.get("Items") or [])

    def _next_token(self, response: Mapping[str, Any]) -> Optional[Any]:
        return response.get("LastEvaluatedKey")
