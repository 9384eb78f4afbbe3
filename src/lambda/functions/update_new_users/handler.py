"""Import workflow: apply group memberships and disabled flags to imported users."""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import EnvSettings, TaskEvent
from directory_sync.sync import DeadlineGovernor
from directory_sync.tasks.updates import NewUserUpdater
from directory_sync.utils.logger import extract_correlation_id, get_logger
from directory_sync.utils.serialization import to_json_safe

# Connect and read timeout for each directory call
CLIENT_TIMEOUT_SECONDS = 5

logger = get_logger(__name__)


def main(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    corr_id = extract_correlation_id(event)
    log = get_logger(__name__, correlation_id=corr_id) if corr_id else logger
    log.info("Received event", extra={"event": event})

    task = TaskEvent.model_validate(event or {})
    settings = EnvSettings.load()
    config = client_config(settings, timeout_seconds=CLIENT_TIMEOUT_SECONDS)
    try:
        updater = NewUserUpdater(
            cognito=boto3.client("cognito-idp", config=config),
            sqs=boto3.client("sqs", config=config),
            settings=settings,
            governor=DeadlineGovernor.from_context(context),
            new_user_pool_id=task.context.new_user_pool_id(),
        )
        result = updater.run(task.context.state.name, task.input)
    except Exception:
        log.exception("Update new users failed")
        raise

    log.info("Result", extra={"result": result})
    return to_json_safe(result)
