"""Chunked batch writes/deletes with resubmission of unprocessed entries.

Two destinations are supported: the backup table (``batch_write_item``, at
most 25 requests per call) and an SQS queue (``send_message_batch`` /
``delete_message_batch``, at most 10 entries per call). A chunk is complete
only once the destination reports nothing unprocessed. Unprocessed entries are
resubmitted after a short fixed delay with no attempt cap; callers bound the
overall work with the DeadlineGovernor.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Protocol, Sequence

from directory_sync.errors import BatchSubmissionError
from directory_sync.utils.clock import sleep_ms
from directory_sync.utils.logger import get_logger
from directory_sync.utils.serialization import to_json_safe


logger = get_logger(__name__)

TABLE_BATCH_MAX = 25
QUEUE_BATCH_MAX = 10
UNPROCESSED_RETRY_DELAY_MS = 100


def chunks(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class BatchDestination(Protocol):
    name: str
    max_batch_size: int

    def put_requests(self, records: Iterable[Any]) -> List[Dict[str, Any]]: ...

    def delete_requests(self, keys: Iterable[Any]) -> List[Dict[str, Any]]: ...

    def submit_puts(self, requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]: ...

    def submit_deletes(self, requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]: ...


class TableDestination:
    """DynamoDB table reached through a ``boto3.resource('dynamodb')``."""

    max_batch_size = TABLE_BATCH_MAX

    def __init__(self, dynamodb: Any, table_name: str) -> None:
        self._dynamodb = dynamodb
        self.name = table_name

    def put_requests(self, records: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return [{"PutRequest": {"Item": dict(r)}} for r in records]

    def delete_requests(self, keys: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return [{"DeleteRequest": {"Key": dict(k)}} for k in keys]

    def _submit(self, requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        resp = self._dynamodb.batch_write_item(RequestItems={self.name: requests})
        return list((resp.get("UnprocessedItems") or {}).get(self.name) or [])

    submit_puts = _submit
    submit_deletes = _submit


class QueueDestination:
    """SQS queue; records are JSON message bodies, keys are received messages."""

    max_batch_size = QUEUE_BATCH_MAX

    def __init__(self, sqs: Any, queue_url: str) -> None:
        self._sqs = sqs
        self.name = queue_url

    def put_requests(self, records: Iterable[Any]) -> List[Dict[str, Any]]:
        return [{"Id": str(uuid.uuid4()), "MessageBody": json.dumps(to_json_safe(r))} for r in records]

    def delete_requests(self, keys: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        # Batch entry ids must be unique and short; received MessageIds qualify
        return [{"Id": m["MessageId"], "ReceiptHandle": m["ReceiptHandle"]} for m in keys]

    def receive(self, *, wait_seconds: int, max_messages: int = QUEUE_BATCH_MAX) -> List[Dict[str, Any]]:
        resp = self._sqs.receive_message(
            QueueUrl=self.name, MaxNumberOfMessages=max_messages, WaitTimeSeconds=wait_seconds
        )
        return list(resp.get("Messages") or [])

    def submit_puts(self, requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        resp = self._sqs.send_message_batch(QueueUrl=self.name, Entries=requests)
        return self._unprocessed(requests, resp)

    def submit_deletes(self, requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        resp = self._sqs.delete_message_batch(QueueUrl=self.name, Entries=requests)
        return self._unprocessed(requests, resp)

    def _unprocessed(self, requests: List[Dict[str, Any]], resp: Mapping[str, Any]) -> List[Dict[str, Any]]:
        failed = list(resp.get("Failed") or [])
        if not failed:
            return []
        permanent = [f for f in failed if f.get("SenderFault")]
        if permanent:
            raise BatchSubmissionError(
                f"Queue rejected {len(permanent)} entr{'y' if len(permanent) == 1 else 'ies'}",
                failed=permanent,
            )
        failed_ids = {f.get("Id") for f in failed}
        return [r for r in requests if r.get("Id") in failed_ids]


class BatchWriter:
    def __init__(
        self,
        *,
        retry_delay_ms: int = UNPROCESSED_RETRY_DELAY_MS,
        sleep: Callable[[float], None] = sleep_ms,
    ) -> None:
        self._retry_delay_ms = retry_delay_ms
        self._sleep = sleep

    def write_batch(self, records: Sequence[Any], destination: BatchDestination) -> int:
        """Write ``records`` in destination-sized chunks; returns the count written."""
        return self._run(destination.put_requests(records), destination.submit_puts, destination, "write")

    def delete_batch(self, keys: Sequence[Any], destination: BatchDestination) -> int:
        return self._run(destination.delete_requests(keys), destination.submit_deletes, destination, "delete")

    def _run(
        self,
        requests: List[Dict[str, Any]],
        submit: Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]],
        destination: BatchDestination,
        action: str,
    ) -> int:
        for chunk in chunks(requests, destination.max_batch_size):
            pending = list(chunk)
            while pending:
                logger.info(
                    "Submitting batch",
                    extra={"action": action, "destination": destination.name, "count": len(pending)},
                )
                pending = submit(pending)
                if pending:
                    logger.info(
                        "Unprocessed entries detected; resubmitting",
                        extra={
                            "action": action,
                            "destination": destination.name,
                            "unprocessed": len(pending),
                            "delay_ms": self._retry_delay_ms,
                        },
                    )
                    self._sleep(self._retry_delay_ms)
        return len(requests)
