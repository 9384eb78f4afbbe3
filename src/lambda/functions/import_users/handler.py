"""Import workflow: create user import jobs and check their status.

States
- "ImportNewUsers" / "Parallel: ImportNewUsers": drain the new-users queue
  into a CSV and start an import job.
- "CheckUserImportJob" / "Parallel: CheckUserImportJob": describe the job
  named by ``Input.ImportJobId``; a failed job raises ImportJobFailedError.
"""

from __future__ import annotations

from typing import Any, Dict

import boto3

from directory_sync.clients import client_config
from directory_sync.models import EnvSettings, TaskEvent
from directory_sync.notifications import Notifier
from directory_sync.sync import DeadlineGovernor
from directory_sync.tasks.importer import UserImporter
from directory_sync.utils.logger import extract_correlation_id, get_logger
from directory_sync.utils.serialization import to_json_safe


logger = get_logger(__name__)


def main(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    corr_id = extract_correlation_id(event)
    log = get_logger(__name__, correlation_id=corr_id) if corr_id else logger
    log.info("Received event", extra={"event": event})

    task = TaskEvent.model_validate(event or {})
    new_user_pool_id = task.context.new_user_pool_id()
    settings = EnvSettings.load()
    config = client_config(settings)
    importer = UserImporter(
        cognito=boto3.client("cognito-idp", config=config),
        sqs=boto3.client("sqs", config=config),
        s3=boto3.client("s3", config=config),
        settings=settings,
        governor=DeadlineGovernor.from_context(context),
        new_user_pool_id=new_user_pool_id,
        notifier=Notifier(settings),
    )
    try:
        result = importer.run(task.context.state.name, task.input)
    except Exception:
        log.exception("Import users failed")
        raise

    log.info("Result", extra={"result": result})
    return to_json_safe(result)
