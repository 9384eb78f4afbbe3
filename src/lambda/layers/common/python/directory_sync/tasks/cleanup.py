"""Backup table cleanup run at the end of each export.

Records whose ``lastConfirmedInUserPool`` marker is older than the current
run's marker were not seen in the user pool this time and are removed. The
work is split in two states: one finds the stale keys and queues delete
messages, the other drains the queue and deletes the keys.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from directory_sync.models.events import CleanupInput, CleanupResult
from directory_sync.models.records import FRESHNESS_ATTRIBUTE
from directory_sync.models.settings import EnvSettings
from directory_sync.sync.batch_writer import BatchWriter, QueueDestination, TableDestination
from directory_sync.sync.deadline import DeadlineGovernor
from directory_sync.sync.fetcher import TableScanFetcher
from directory_sync.utils.clock import sleep_ms
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

FIND_ITEMS_STATE = "BackupTableCleanup: Find Items"
REMOVE_ITEMS_STATE = "BackupTableCleanup: Remove Items"

DELETE_ACTION = "DELETE"
RECEIVE_WAIT_SECONDS = 5
MAX_EMPTY_RECEIVES = 5
EMPTY_RECEIVE_PAUSE_MS = 1000


def stale_scan_kwargs(marker: int) -> Dict[str, Any]:
    """Scan parameters selecting keys of records last confirmed before ``marker``."""
    return {
        "FilterExpression": f"attribute_exists({FRESHNESS_ATTRIBUTE}) and {FRESHNESS_ATTRIBUTE} < :ts",
        "ProjectionExpression": "id,#type",
        "ExpressionAttributeValues": {":ts": marker},
        "ExpressionAttributeNames": {"#type": "type"},
    }


def unique_keys(keys: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop repeated (id, type) keys; one BatchWriteItem request rejects duplicates."""
    seen = set()
    unique: List[Dict[str, Any]] = []
    for key in keys:
        ident = (key.get("id"), key.get("type"))
        if ident in seen:
            continue
        seen.add(ident)
        unique.append(key)
    return unique


class BackupTableCleaner:
    def __init__(
        self,
        *,
        dynamodb: Any,
        sqs: Any,
        settings: EnvSettings,
        governor: DeadlineGovernor,
        writer: Optional[BatchWriter] = None,
        receive_wait_seconds: int = RECEIVE_WAIT_SECONDS,
        sleep: Callable[[float], None] = sleep_ms,
    ) -> None:
        settings.require("backup_table_name", "queue_url")
        self._dynamodb = dynamodb
        self._governor = governor
        self._writer = writer or BatchWriter()
        self._table = TableDestination(dynamodb, settings.backup_table_name or "")
        self._queue = QueueDestination(sqs, settings.queue_url or "")
        self._receive_wait_seconds = receive_wait_seconds
        self._sleep = sleep

    def run(self, state_name: str, event: CleanupInput) -> Dict[str, Any]:
        result = CleanupResult(
            export_timestamp=event.export_timestamp,
            num_items_added_to_queue=event.num_items_added_to_queue,
        )
        if state_name == FIND_ITEMS_STATE:
            last_key, queued = self.find_stale_items(event)
            # '' ends the loop in the state machine
            result.last_evaluated_key = last_key or ""
            result.num_items_added_to_queue += queued
        elif state_name == REMOVE_ITEMS_STATE:
            result.is_queue_empty = self.remove_queued_items()
        else:
            logger.warning("Unknown state name", extra={"state_name": state_name})
        return {"result": result.to_output()}

    def find_stale_items(self, event: CleanupInput) -> Tuple[Optional[Dict[str, Any]], int]:
        """Queue a delete message for every stale key; returns (last_key, queued)."""
        fetcher = TableScanFetcher(
            self._dynamodb.Table(self._table.name),
            stale_scan_kwargs(event.export_timestamp),
            governor=self._governor,
        )
        token = event.exclusive_start_key
        queued = 0
        while True:
            page = fetcher.fetch_page(token)
            if page.items:
                messages = [{"Action": DELETE_ACTION, "Key": item} for item in page.items]
                queued += self._writer.write_batch(messages, self._queue)
            token = page.next_token
            if not (token and self._governor.has_capacity()):
                break
        logger.info("Stale records queued for removal", extra={"queued": queued, "finished": not token})
        return token, queued

    def remove_queued_items(self) -> bool:
        """Drain the delete queue; True once it has been seen empty repeatedly."""
        empty_receives = 0
        while True:
            messages = self._queue.receive(wait_seconds=self._receive_wait_seconds)
            if messages:
                empty_receives = 0
                self._remove(messages)
            else:
                empty_receives += 1
                logger.info("Received 0 messages", extra={"empty_receives": empty_receives})
                if empty_receives >= MAX_EMPTY_RECEIVES:
                    return True
                self._sleep(EMPTY_RECEIVE_PAUSE_MS)
            if not self._governor.has_capacity():
                return False

    def _remove(self, messages: List[Dict[str, Any]]) -> None:
        keys = unique_keys(json.loads(m["Body"])["Key"] for m in messages)
        self._writer.delete_batch(keys, self._table)
        logger.info("Records removed from the backup table", extra={"count": len(keys)})
        # Messages are only deleted after their keys are gone
        self._writer.delete_batch(messages, self._queue)
