"""Workflow completion and failure reporting."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Optional

from directory_sync.models.events import TaskContext
from directory_sync.models.records import RecordTypes, timestamp_marker_record
from directory_sync.models.settings import EnvSettings
from directory_sync.notifications import Notifier
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

ERROR_STATES = frozenset(
    {
        "WorkflowErrorHandlerLambda",
        "WorkflowErrorHandlerLambdaGroupsMap",
        "WorkflowErrorHandlerLambdaDeletedGroupsMap",
        "Parallel: WorkflowErrorHandlerLambda (Scan Table)",
        "Parallel: WorkflowErrorHandlerLambda",
    }
)
CLEANUP_STATE = "WorkflowCleanupLambda"
EXPORT_WORKFLOW = "ExportWorkflow"
IMPORT_WORKFLOW = "ImportWorkflow"


def execution_seconds(context: TaskContext) -> float:
    """Seconds between the execution start and entering the current state; -1 if unknown."""
    start = _parse_time(context.execution.start_time)
    end = _parse_time(context.state.entered_time)
    if start is None or end is None:
        return -1
    return (end - start).total_seconds()


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable state machine timestamp", extra={"value": value})
        return None


class MessageBroker:
    def __init__(self, *, settings: EnvSettings, dynamodb: Any, notifier: Notifier) -> None:
        self._settings = settings
        self._dynamodb = dynamodb
        self._notifier = notifier

    def handle(self, context: TaskContext, state_input: Dict[str, Any]) -> None:
        state_name = context.state.name
        if state_name in ERROR_STATES:
            self.handle_error(context, state_input)
        elif state_name == CLEANUP_STATE:
            self.handle_cleanup(context, state_input)
        else:
            logger.warning("Unknown state name", extra={"state_name": state_name})

    def handle_error(self, context: TaskContext, state_input: Dict[str, Any]) -> None:
        workflow = context.state_machine.name
        error: Any = "Unknown"
        cause = state_input.get("Cause") if isinstance(state_input, dict) else None
        if cause:
            try:
                error = json.loads(cause)
            except (TypeError, ValueError):
                if str(cause).strip():
                    error = cause

        self._notifier.publish_message(
            f"An unexpected error occurred while executing the {workflow} for this solution:\n"
            f"{json.dumps(error, indent=2)}\n\n"
            "Please check the state machine's task logs for additional information\n\n"
            f"Execution details:\n{_context_json(context)}"
        )
        self._notifier.send_metric(self._metric("workflow-error", context))

    def handle_cleanup(self, context: TaskContext, state_input: Dict[str, Any]) -> None:
        workflow = context.state_machine.name
        send_metric = True
        if context.workflow_name == EXPORT_WORKFLOW:
            export_timestamp = state_input.get("ExportTimestamp")
            if export_timestamp:
                self._record_latest_export(int(export_timestamp))
        elif context.workflow_name != IMPORT_WORKFLOW:
            send_metric = False

        if self._settings.notify_on_success:
            self._notifier.publish_message(
                f"Workflow ({workflow}) completed successfully. Execution took "
                f"{execution_seconds(context)} second(s).\n\nExecution details:\n{_context_json(context)}"
            )
        if send_metric:
            self._notifier.send_metric(self._metric("workflow-finished", context))

    def _record_latest_export(self, export_timestamp: int) -> None:
        self._settings.require("backup_table_name")
        item = timestamp_marker_record(export_timestamp, RecordTypes.from_settings(self._settings))
        self._dynamodb.Table(self._settings.backup_table_name).put_item(Item=item)
        logger.info("Latest export timestamp updated", extra={"export_timestamp": export_timestamp})

    def _metric(self, event_type: str, context: TaskContext) -> Dict[str, Any]:
        return {
            "EventType": event_type,
            "EventDetails": {
                "Region": self._settings.region,
                "IsPrimaryRegion": self._settings.is_primary_region,
                "ExecutionTimeInSeconds": execution_seconds(context),
                "WorkflowName": context.workflow_name,
            },
        }


def _context_json(context: TaskContext) -> str:
    return json.dumps(context.model_dump(by_alias=True, exclude_none=True), indent=2, default=str)
