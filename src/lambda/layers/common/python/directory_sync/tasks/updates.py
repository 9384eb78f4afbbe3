"""Import workflow: apply group memberships and disabled flags after import.

Every directory call is individually accounted against COGNITO_TPS, and a
message is only deleted from the updates queue once its call succeeded.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Optional

from directory_sync.models.events import UpdateNewUsersResult
from directory_sync.models.records import RecordKind, RecordTypes
from directory_sync.models.settings import EnvSettings
from directory_sync.sync.batch_writer import BatchWriter, QueueDestination
from directory_sync.sync.deadline import DeadlineGovernor
from directory_sync.sync.rate_limiter import RateLimiter
from directory_sync.sync.retry import RetryPolicy
from directory_sync.utils.clock import sleep_ms
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

RECEIVE_WAIT_SECONDS = 3
UPDATE_RETRY = RetryPolicy(base_ms=100, max_ms=60 * 1000, jitter=True)
DELETE_RETRY = RetryPolicy(base_ms=50, max_ms=1000)


class NewUserUpdater:
    def __init__(
        self,
        *,
        cognito: Any,
        sqs: Any,
        settings: EnvSettings,
        governor: DeadlineGovernor,
        new_user_pool_id: str,
        limiter: Optional[RateLimiter] = None,
        writer: Optional[BatchWriter] = None,
        receive_wait_seconds: int = RECEIVE_WAIT_SECONDS,
        sleep: Callable[[float], None] = sleep_ms,
    ) -> None:
        settings.require("new_users_updates_queue_url")
        self._cognito = cognito
        self._governor = governor
        self._pool_id = new_user_pool_id
        self._limiter = limiter or RateLimiter(settings.cognito_tps)
        self._writer = writer or BatchWriter(sleep=sleep)
        self._types = RecordTypes.from_settings(settings)
        self._queue = QueueDestination(sqs, settings.new_users_updates_queue_url or "")
        self._receive_wait_seconds = receive_wait_seconds
        self._sleep = sleep

    def run(self, state_name: str, state_input: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(state_input)
        if state_name:
            result["StateName"] = state_name
        result.update(self.update_new_users().to_output())
        return {"result": result}

    def update_new_users(self) -> UpdateNewUsersResult:
        output = UpdateNewUsersResult()
        while True:
            messages = self._queue.receive(wait_seconds=self._receive_wait_seconds)
            if not messages:
                logger.info("No messages in queue")
                output.queue_empty = True
                return output

            output.queue_empty = False
            logger.info("Read messages off the updates queue", extra={"count": len(messages)})
            applied: List[Dict[str, Any]] = []
            for message in messages:
                self._apply(json.loads(message["Body"]))
                applied.append(message)

            DELETE_RETRY.run(
                lambda: self._writer.delete_batch(applied, self._queue),
                sleep=self._sleep,
                description="delete_message_batch",
            )
            if not self._governor.has_capacity():
                return output

    def _apply(self, update: Mapping[str, Any]) -> None:
        def _call() -> Any:
            self._limiter.acquire()
            if self._types.classify(update) is RecordKind.USER and not update.get("userEnabled"):
                logger.info("Disabling user")
                return self._cognito.admin_disable_user(UserPoolId=self._pool_id, Username=update["pseudoUsername"])
            logger.info("Adding user to group", extra={"group_name": update.get("groupName")})
            return self._cognito.admin_add_user_to_group(
                UserPoolId=self._pool_id,
                GroupName=update["groupName"],
                Username=update["groupPseudoUsername"],
            )

        UPDATE_RETRY.run(_call, governor=self._governor, sleep=self._sleep, description="apply_update")
