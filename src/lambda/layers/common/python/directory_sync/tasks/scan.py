"""Import workflow: fan the backup table out to the import queues.

Users go to the new-users queue (consumed by the CSV import job); group
memberships and disabled users go to the updates queue (applied once the
users exist); groups are created in the new user pool right away, since
memberships depend on them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from botocore.exceptions import ClientError

from directory_sync.errors import error_code
from directory_sync.models.events import ScanTableInput, ScanTableResult
from directory_sync.models.records import RecordKind, RecordTypes
from directory_sync.models.settings import EnvSettings
from directory_sync.sync.batch_writer import BatchWriter, QueueDestination
from directory_sync.sync.deadline import DeadlineGovernor
from directory_sync.sync.fetcher import TableScanFetcher
from directory_sync.sync.rate_limiter import RateLimiter
from directory_sync.sync.retry import RetryPolicy
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

CREATE_GROUP_RETRY = RetryPolicy(base_ms=100, max_ms=60 * 1000)


def needs_update(item: Mapping[str, Any], kind: RecordKind) -> bool:
    """Memberships and disabled users are applied after the import job."""
    if kind is RecordKind.GROUP_MEMBERSHIP:
        return True
    return kind is RecordKind.USER and not item.get("userEnabled")


class BackupTableScanner:
    def __init__(
        self,
        *,
        cognito: Any,
        dynamodb: Any,
        sqs: Any,
        settings: EnvSettings,
        governor: DeadlineGovernor,
        new_user_pool_id: str,
        limiter: Optional[RateLimiter] = None,
        writer: Optional[BatchWriter] = None,
    ) -> None:
        settings.require("backup_table_name", "new_users_queue_url", "new_users_updates_queue_url")
        self._cognito = cognito
        self._governor = governor
        self._new_user_pool_id = new_user_pool_id
        self._limiter = limiter or RateLimiter(settings.cognito_tps)
        self._writer = writer or BatchWriter()
        self._types = RecordTypes.from_settings(settings)
        self._table = dynamodb.Table(settings.backup_table_name)
        self._new_users = QueueDestination(sqs, settings.new_users_queue_url or "")
        self._updates = QueueDestination(sqs, settings.new_users_updates_queue_url or "")

    def run(self, event: ScanTableInput) -> Dict[str, Any]:
        fetcher = TableScanFetcher(self._table, governor=self._governor)
        token = event.last_evaluated_key
        while True:
            page = fetcher.fetch_page(token)
            if page.items:
                self._dispatch(page.items)
            else:
                logger.info("No items found")
            token = page.next_token
            if not (token and self._governor.has_capacity()):
                break

        result = ScanTableResult(last_evaluated_key=token, all_groups_processed="No" if token else "Yes")
        logger.info("Backup table scan finished" if not token else "Backup table scan paused")
        return {"result": result.to_output()}

    def _dispatch(self, items: List[Dict[str, Any]]) -> None:
        users: List[Dict[str, Any]] = []
        updates: List[Dict[str, Any]] = []
        groups: List[Dict[str, Any]] = []
        for item in items:
            kind = self._types.classify(item)
            if kind is RecordKind.TIMESTAMP_MARKER:
                continue
            if kind is RecordKind.USER:
                users.append(item)
            elif kind is RecordKind.GROUP:
                groups.append(item)
            if needs_update(item, kind):
                updates.append(item)

        logger.info(
            "Dispatching backup records",
            extra={"users": len(users), "updates": len(updates), "groups": len(groups)},
        )
        if users:
            self._writer.write_batch(users, self._new_users)
        if updates:
            self._writer.write_batch(updates, self._updates)
        self._create_groups(groups)

    def _create_groups(self, groups: List[Dict[str, Any]]) -> None:
        pending = list(groups)
        while pending:
            self._limiter.open_window()
            while True:
                self._create_group(pending.pop(0))
                self._limiter.record_call()
                if not (pending and self._limiter.has_room()):
                    break
            if pending:
                self._limiter.pause_if_saturated()

    def _create_group(self, group: Mapping[str, Any]) -> None:
        params: Dict[str, Any] = {
            "UserPoolId": self._new_user_pool_id,
            "GroupName": group["groupName"],
            "Description": group.get("groupDescription") or "",
        }
        precedence = group.get("groupPrecedence")
        if precedence is not None and int(precedence) >= 0:
            params["Precedence"] = int(precedence)

        logger.info("Creating group", extra={"group_name": params["GroupName"]})
        try:
            CREATE_GROUP_RETRY.run(
                lambda: self._cognito.create_group(**params),
                governor=self._governor,
                description="create_group",
            )
        except ClientError as exc:
            # A re-run after a partial failure finds groups it already created
            if error_code(exc) != "GroupExistsException":
                raise
            logger.info("Group already exists", extra={"group_name": params["GroupName"]})
