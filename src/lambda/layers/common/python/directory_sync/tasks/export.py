"""Export workflow tasks: copy users, groups and memberships into the backup table.

Every task is a function of its state input plus the remaining invocation
time. Long listings return a continuation token the state machine feeds back
on the next invocation; the run's freshness marker travels with it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from directory_sync.errors import UnsupportedUserPoolError
from directory_sync.models.events import (
    CheckUserPoolConfigOutput,
    ExportGroupEvent,
    ExportGroupOutput,
    ExportUsersEvent,
    ExportUsersInGroupEvent,
    ExportUsersInGroupOutput,
    ExportUsersOutput,
    GroupSummary,
    ListGroupsEvent,
    ListGroupsOutput,
    PoolConfig,
)
from directory_sync.models.records import RecordTypes, group_member_record, group_record, user_record
from directory_sync.models.settings import EnvSettings
from directory_sync.sync.batch_writer import BatchWriter, TableDestination
from directory_sync.sync.deadline import DeadlineGovernor
from directory_sync.sync.fetcher import GroupFetcher, GroupMemberFetcher, PaginatedFetcher, UserFetcher
from directory_sync.sync.identity import resolve_pseudo_username, resolve_subject
from directory_sync.sync.rate_limiter import RateLimiter
from directory_sync.utils.clock import now_ms
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)


def drain_pages(
    fetcher: PaginatedFetcher,
    token: Optional[Any],
    on_page: Callable[[List[Dict[str, Any]]], int],
    *,
    limiter: RateLimiter,
    governor: DeadlineGovernor,
) -> Tuple[Optional[Any], int]:
    """Read pages until the source is exhausted or the deadline is near.

    Listing calls, retried attempts included, are bounded to the limiter's
    ceiling per second. The page's records are handed to ``on_page`` before
    the token advances, so a token is only returned once everything before it
    has been written.
    """
    processed = 0
    while True:
        limiter.open_window()
        while True:
            page = fetcher.fetch_page(token, on_attempt=limiter.record_call)
            if page.items:
                processed += on_page(page.items)
            else:
                logger.info("No records returned", extra={"source": fetcher.description})
            token = page.next_token
            if not (token and limiter.has_room() and governor.has_capacity()):
                break

        if token:
            limiter.pause_if_saturated()
        if not (token and governor.has_capacity()):
            return token, processed


class DirectoryExporter:
    """Runs the export-side tasks against the primary user pool."""

    def __init__(
        self,
        *,
        cognito: Any,
        dynamodb: Any,
        settings: EnvSettings,
        governor: DeadlineGovernor,
        limiter: Optional[RateLimiter] = None,
        writer: Optional[BatchWriter] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        settings.require("user_pool_id", "backup_table_name")
        self._cognito = cognito
        self._dynamodb = dynamodb
        self._settings = settings
        self._governor = governor
        self._limiter = limiter
        self._writer = writer or BatchWriter()
        self._clock = clock
        self._types = RecordTypes.from_settings(settings)
        self._table = TableDestination(dynamodb, settings.backup_table_name or "")

    @property
    def limiter(self) -> RateLimiter:
        # COGNITO_TPS is only required by the paging tasks
        if self._limiter is None:
            self._limiter = RateLimiter(self._settings.cognito_tps)
        return self._limiter

    def check_user_pool_config(self) -> Dict[str, Any]:
        resp = self._cognito.describe_user_pool(UserPoolId=self._settings.user_pool_id)
        pool = resp.get("UserPool", {})
        mfa = pool.get("MfaConfiguration")
        if mfa and mfa != "OFF":
            raise UnsupportedUserPoolError(
                f"User Pools with MFA enabled are not supported. The user pool's MFA configuration is set to {mfa}"
            )
        output = CheckUserPoolConfigOutput()
        attrs = pool.get("UsernameAttributes")
        if attrs is not None:
            output.username_attributes = PoolConfig(username_attributes=list(attrs)).to_event_value()
        logger.info("User pool configuration supported", extra={"username_attributes": attrs or []})
        return {"result": output.to_output()}

    def export_users(self, event: ExportUsersEvent) -> Dict[str, Any]:
        pool = PoolConfig.from_event_value(event.username_attributes)
        token = event.pagination_token or None
        if token and event.export_timestamp is not None:
            # Resumed run: keep the marker chosen by the first invocation
            marker = event.export_timestamp
        else:
            marker = self._clock()

        def _write(users: List[Dict[str, Any]]) -> int:
            records = [
                user_record(
                    u,
                    subject=resolve_subject(u),
                    pseudo_username=resolve_pseudo_username(u, pool),
                    marker=marker,
                    region=self._settings.region,
                    types=self._types,
                )
                for u in users
            ]
            return self._writer.write_batch(records, self._table)

        fetcher = UserFetcher(self._cognito, self._settings.user_pool_id or "", governor=self._governor)
        token, processed = drain_pages(fetcher, token, _write, limiter=self.limiter, governor=self._governor)

        output = ExportUsersOutput(
            pagination_token=token or "",
            username_attributes=event.username_attributes,
            export_timestamp=marker,
        )
        logger.info("Exported users", extra={"users": processed, "finished": not token})
        return {"result": output.to_output(), "totalUserProcessedCount": processed}

    def list_groups(self, event: ListGroupsEvent) -> Dict[str, Any]:
        """Return one page of groups for the state machine's Map state."""
        fetcher = GroupFetcher(self._cognito, self._settings.user_pool_id or "", governor=self._governor)
        page = fetcher.fetch_page(event.list_groups_next_token)
        groups = [
            GroupSummary(
                group_name=g["GroupName"],
                group_description=g.get("Description") or "",
                group_precedence=g["Precedence"] if g.get("Precedence") is not None else -1,
                group_last_modified_date=_iso(g.get("LastModifiedDate")),
                username_attributes=event.username_attributes or "[]",
            )
            for g in page.items
        ]
        output = ListGroupsOutput(
            export_timestamp=event.export_timestamp,
            num_groups_to_process=len(groups),
            groups=groups,
            list_groups_next_token=page.next_token,
            processed_all_groups="No" if page.next_token else "Yes",
        )
        logger.info("Listed groups", extra={"groups": len(groups), "more": bool(page.next_token)})
        return output.to_output()

    def export_group(self, event: ExportGroupEvent) -> Dict[str, Any]:
        item = group_record(
            group_name=event.group_name,
            description=event.group_description,
            precedence=event.group_precedence,
            last_modified_date=event.group_last_modified_date,
            marker=event.export_timestamp,
            region=self._settings.region,
            types=self._types,
        )
        self._dynamodb.Table(self._table.name).put_item(Item=item)
        logger.info("Group exported", extra={"group_name": event.group_name})
        return ExportGroupOutput(
            export_timestamp=event.export_timestamp,
            group_name=event.group_name,
            username_attributes=event.username_attributes,
        ).to_output()

    def export_users_in_group(self, event: ExportUsersInGroupEvent) -> Dict[str, Any]:
        pool = PoolConfig.from_event_value(event.username_attributes)
        group_name = event.group_name
        marker = event.export_timestamp

        def _write(users: List[Dict[str, Any]]) -> int:
            records = [
                group_member_record(
                    u,
                    group_name=group_name,
                    subject=resolve_subject(u),
                    pseudo_username=resolve_pseudo_username(u, pool),
                    marker=marker,
                    region=self._settings.region,
                )
                for u in users
            ]
            return self._writer.write_batch(records, self._table)

        fetcher = GroupMemberFetcher(
            self._cognito, self._settings.user_pool_id or "", group_name, governor=self._governor
        )
        token, processed = drain_pages(
            fetcher, event.list_users_in_group_next_token, _write, limiter=self.limiter, governor=self._governor
        )

        logger.info(
            "Exported group members",
            extra={"group_name": group_name, "users": processed, "finished": not token},
        )
        return ExportUsersInGroupOutput(
            export_timestamp=marker,
            group_name=group_name,
            list_users_in_group_next_token=token,
            processed_all_users_in_group="No" if token else "Yes",
            username_attributes=event.username_attributes,
        ).to_output()


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
