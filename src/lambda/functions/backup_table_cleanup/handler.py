"""Export workflow: remove backup records the latest export did not confirm.

Invoked with ``{"Context.$": "$$", "Input.$": "$"}`` from two states:
"BackupTableCleanup: Find Items" and "BackupTableCleanup: Remove Items".
"""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import CleanupInput, EnvSettings, TaskEvent
from directory_sync.sync import DeadlineGovernor
from directory_sync.tasks.cleanup import BackupTableCleaner
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
    cleaner = BackupTableCleaner(
        dynamodb=boto3.resource("dynamodb", config=config),
        sqs=boto3.client("sqs", config=config),
        settings=settings,
        governor=DeadlineGovernor.from_context(context),
    )
    try:
        result = cleaner.run(task.context.state.name, CleanupInput.model_validate(task.input))
    except Exception:
        log.exception("Backup table cleanup failed")
        raise

    log.info("Result", extra={"result": result})
    return to_json_safe(result)
