"""Import workflow: scan the backup table, queue users and updates, create groups."""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import EnvSettings, ScanTableInput, TaskEvent
from directory_sync.sync import DeadlineGovernor
from directory_sync.tasks.scan import BackupTableScanner
from directory_sync.utils.logger import extract_correlation_id, get_logger
from directory_sync.utils.serialization import to_json_safe


logger = get_logger(__name__)


def main(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    corr_id = extract_correlation_id(event)
    log = get_logger(__name__, correlation_id=corr_id) if corr_id else logger
    log.info("Received event", extra={"event": event})

    task = TaskEvent.model_validate(event or {})
    settings = EnvSettings.load()
    config = client_config(settings)
    try:
        scanner = BackupTableScanner(
            cognito=boto3.client("cognito-idp", config=config),
            dynamodb=boto3.resource("dynamodb", config=config),
            sqs=boto3.client("sqs", config=config),
            settings=settings,
            governor=DeadlineGovernor.from_context(context),
            new_user_pool_id=task.context.new_user_pool_id(),
        )
        result = scanner.run(ScanTableInput.model_validate(task.input))
    except Exception:
        log.exception("Scan table failed")
        raise

    log.info("Result", extra={"result": result})
    return to_json_safe(result)
