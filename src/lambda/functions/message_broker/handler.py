"""Common: publish workflow notifications and anonymous metrics.

Error handler states publish the failure cause; ``WorkflowCleanupLambda``
records the latest export timestamp (export workflow) and reports success.
"""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import EnvSettings, TaskEvent
from directory_sync.notifications import Notifier
from directory_sync.tasks.broker import MessageBroker
from directory_sync.utils.logger import extract_correlation_id, get_logger


logger = get_logger(__name__)


def main(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    corr_id = extract_correlation_id(event)
    log = get_logger(__name__, correlation_id=corr_id) if corr_id else logger
    log.info("Received event", extra={"event": event})

    task = TaskEvent.model_validate(event or {})
    settings = EnvSettings.load()
    config = client_config(settings)
    broker = MessageBroker(
        settings=settings,
        dynamodb=boto3.resource("dynamodb", config=config),
        notifier=Notifier(settings, sns_client=boto3.client("sns", config=config)),
    )
    try:
        broker.handle(task.context, task.input)
    except Exception:
        log.exception("Message broker failed")
        raise
    return {"result": {"StateName": task.context.state.name}}
