"""Export workflow: copy one group's memberships into the backup table.

Returns ``processedAllUsersInGroup`` = "No" with ``listUsersInGroupNextToken``
when the invocation ran out of time; the state machine re-invokes with the
returned payload.
"""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import EnvSettings, ExportUsersInGroupEvent
from directory_sync.sync import DeadlineGovernor
from directory_sync.tasks.export import DirectoryExporter
from directory_sync.utils.logger import extract_correlation_id, get_logger


logger = get_logger(__name__)


def main(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    corr_id = extract_correlation_id(event)
    log = get_logger(__name__, correlation_id=corr_id) if corr_id else logger
    log.info("Received event", extra={"event": event})

    settings = EnvSettings.load()
    config = client_config(settings)
    exporter = DirectoryExporter(
        cognito=boto3.client("cognito-idp", config=config),
        dynamodb=boto3.resource("dynamodb", config=config),
        settings=settings,
        governor=DeadlineGovernor.from_context(context),
    )
    try:
        result = exporter.export_users_in_group(ExportUsersInGroupEvent.model_validate(event or {}))
    except Exception:
        log.exception("Export users in group failed")
        raise

    log.info("Result", extra={"result": result})
    return result
