"""Import workflow: refuse to start while either import queue holds messages."""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import EnvSettings, TaskEvent
from directory_sync.tasks.checks import check_workflow_queues
from directory_sync.utils.logger import extract_correlation_id, get_logger


logger = get_logger(__name__)


def main(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    corr_id = extract_correlation_id(event)
    log = get_logger(__name__, correlation_id=corr_id) if corr_id else logger
    log.info("Received event", extra={"event": event})

    task = TaskEvent.model_validate(event or {})
    settings = EnvSettings.load()
    settings.require("new_users_queue_url", "new_users_updates_queue_url")
    sqs = boto3.client("sqs", config=client_config(settings))
    try:
        result = check_workflow_queues(
            sqs,
            task.context.workflow_name,
            [settings.new_users_queue_url, settings.new_users_updates_queue_url],
            task.input,
        )
    except Exception:
        log.exception("Workflow queue check failed")
        raise

    log.info("Result", extra={"result": result})
    return result
