"""Import workflow: confirm the target user pool has no users or groups yet."""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import EnvSettings, TaskEvent
from directory_sync.tasks.checks import check_new_user_pool
from directory_sync.utils.logger import extract_correlation_id, get_logger


logger = get_logger(__name__)


def main(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    corr_id = extract_correlation_id(event)
    log = get_logger(__name__, correlation_id=corr_id) if corr_id else logger
    log.info("Received event", extra={"event": event})

    task = TaskEvent.model_validate(event or {})
    new_user_pool_id = task.context.new_user_pool_id()
    settings = EnvSettings.load()
    cognito = boto3.client("cognito-idp", config=client_config(settings))

    result = check_new_user_pool(cognito, new_user_pool_id)
    log.info("Result", extra={"result": result})
    return result
