"""Common: report whether this execution is the only one running for its state machine."""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import EnvSettings, TaskEvent
from directory_sync.tasks.checks import check_state_machine_executions
from directory_sync.utils.logger import extract_correlation_id, get_logger


logger = get_logger(__name__)


def main(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    corr_id = extract_correlation_id(event)
    log = get_logger(__name__, correlation_id=corr_id) if corr_id else logger
    log.info("Received event", extra={"event": event})

    task = TaskEvent.model_validate(event or {})
    sfn = boto3.client("stepfunctions", config=client_config(EnvSettings.load()))
    result = check_state_machine_executions(
        sfn, task.context.state_machine.id or "", task.context.execution.id or ""
    )
    log.info("Result", extra={"result": result})
    return result
