"""Typed state machine payloads for the workflow Lambdas using Pydantic v2.

Field aliases keep the spelling the Export/Import state machines already pass
between states (``paginationToken``, ``ExportTimestamp``, ...), so a result
returned by one invocation can be fed back unmodified into the next.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from directory_sync.errors import ConfigurationError


class _StateModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_output(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ===== Step Functions context object =====


class ExecutionContext(_StateModel):
    id: Optional[str] = Field(default=None, alias="Id")
    name: Optional[str] = Field(default=None, alias="Name")
    input: Dict[str, Any] = Field(default_factory=dict, alias="Input")
    start_time: Optional[str] = Field(default=None, alias="StartTime")


class StateContext(_StateModel):
    name: str = Field(default="", alias="Name")
    entered_time: Optional[str] = Field(default=None, alias="EnteredTime")


class StateMachineRef(_StateModel):
    id: Optional[str] = Field(default=None, alias="Id")
    name: str = Field(default="", alias="Name")


class TaskContext(_StateModel):
    execution: ExecutionContext = Field(default_factory=ExecutionContext, alias="Execution")
    state: StateContext = Field(default_factory=StateContext, alias="State")
    state_machine: StateMachineRef = Field(default_factory=StateMachineRef, alias="StateMachine")

    @property
    def workflow_name(self) -> str:
        """State machine names are '<Workflow>-<suffix>'; return the prefix."""
        return self.state_machine.name.split("-")[0]

    def new_user_pool_id(self) -> str:
        raw = self.execution.input.get("NewUserPoolId")
        value = raw.strip() if isinstance(raw, str) else ""
        if not value:
            raise ConfigurationError("Unable to determine the new user pool ID")
        return value


class TaskEvent(_StateModel):
    """Envelope used by tasks invoked with ``{"Context.$": "$$", "Input.$": "$"}``."""

    context: TaskContext = Field(default_factory=TaskContext, alias="Context")
    input: Dict[str, Any] = Field(default_factory=dict, alias="Input")

    @field_validator("input", mode="before")
    @classmethod
    def _coerce_input(cls, v: Any) -> Dict[str, Any]:  # type: ignore[override]
        return v if isinstance(v, dict) else {}


# ===== Pool configuration =====


class PoolConfig(BaseModel):
    """Alternate sign-in attributes configured on the source user pool."""

    username_attributes: List[str] = Field(default_factory=list)

    @classmethod
    def from_event_value(cls, raw: Optional[str]) -> "PoolConfig":
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return cls()
        try:
            attrs = json.loads(raw) if isinstance(raw, str) else raw
        except ValueError:
            raise ConfigurationError(f"UsernameAttributes is not a JSON list: {raw!r}") from None
        if not isinstance(attrs, list) or not all(isinstance(a, str) for a in attrs):
            raise ConfigurationError(f"UsernameAttributes is not a JSON list: {raw!r}")
        return cls(username_attributes=attrs)

    def to_event_value(self) -> str:
        return json.dumps(self.username_attributes)


# ===== Export workflow =====


class CheckUserPoolConfigOutput(_StateModel):
    username_attributes: Optional[str] = Field(default=None, alias="UsernameAttributes")


class ExportUsersEvent(_StateModel):
    pagination_token: Optional[str] = Field(default=None, alias="paginationToken")
    export_timestamp: Optional[int] = Field(default=None, alias="ExportTimestamp")
    username_attributes: Optional[str] = Field(default=None, alias="UsernameAttributes")


class ExportUsersOutput(_StateModel):
    pagination_token: str = Field(default="", alias="paginationToken")
    username_attributes: Optional[str] = Field(default=None, alias="UsernameAttributes")
    export_timestamp: int = Field(alias="ExportTimestamp")


class ListGroupsEvent(_StateModel):
    export_timestamp: int = Field(alias="ExportTimestamp")
    list_groups_next_token: Optional[str] = Field(default=None, alias="ListGroupsNextToken")
    username_attributes: Optional[str] = Field(default=None, alias="UsernameAttributes")


class GroupSummary(_StateModel):
    group_name: str = Field(alias="groupName")
    group_description: str = Field(default="", alias="groupDescription")
    group_precedence: int = Field(default=-1, alias="groupPrecedence")
    group_last_modified_date: Optional[str] = Field(default=None, alias="groupLastModifiedDate")
    username_attributes: str = Field(default="[]", alias="UsernameAttributes")


class ListGroupsOutput(_StateModel):
    export_timestamp: int = Field(alias="ExportTimestamp")
    num_groups_to_process: int = Field(alias="NumGroupsToProcess")
    groups: List[GroupSummary] = Field(default_factory=list, alias="Groups")
    list_groups_next_token: Optional[str] = Field(default=None, alias="ListGroupsNextToken")
    processed_all_groups: str = Field(alias="ProcessedAllGroups")


class ExportGroupEvent(_StateModel):
    group_name: str = Field(alias="groupName")
    group_description: str = Field(default="", alias="groupDescription")
    group_precedence: int = Field(default=-1, alias="groupPrecedence")
    group_last_modified_date: Optional[str] = Field(default=None, alias="groupLastModifiedDate")
    export_timestamp: int = Field(alias="exportTimestamp")
    username_attributes: Optional[str] = Field(default=None, alias="UsernameAttributes")


class ExportGroupOutput(_StateModel):
    export_timestamp: int = Field(alias="exportTimestamp")
    group_name: str = Field(alias="groupName")
    username_attributes: Optional[str] = Field(default=None, alias="UsernameAttributes")


class ExportUsersInGroupEvent(_StateModel):
    group_name: str = Field(alias="groupName")
    export_timestamp: int = Field(alias="exportTimestamp")
    list_users_in_group_next_token: Optional[str] = Field(default=None, alias="listUsersInGroupNextToken")
    username_attributes: Optional[str] = Field(default=None, alias="UsernameAttributes")


class ExportUsersInGroupOutput(_StateModel):
    export_timestamp: int = Field(alias="exportTimestamp")
    group_name: str = Field(alias="groupName")
    list_users_in_group_next_token: Optional[str] = Field(default=None, alias="listUsersInGroupNextToken")
    processed_all_users_in_group: str = Field(alias="processedAllUsersInGroup")
    username_attributes: Optional[str] = Field(default=None, alias="UsernameAttributes")


class CleanupInput(_StateModel):
    export_timestamp: int = Field(alias="ExportTimestamp")
    num_items_added_to_queue: int = Field(default=0, alias="NumItemsAddedToQueue")
    # '' ends the state machine loop; a dict resumes the scan
    last_evaluated_key: Optional[Union[Dict[str, Any], str]] = Field(default=None, alias="lastEvaluatedKey")

    @property
    def exclusive_start_key(self) -> Optional[Dict[str, Any]]:
        return self.last_evaluated_key if isinstance(self.last_evaluated_key, dict) else None


class CleanupResult(_StateModel):
    export_timestamp: int = Field(alias="ExportTimestamp")
    num_items_added_to_queue: int = Field(default=0, alias="NumItemsAddedToQueue")
    last_evaluated_key: Optional[Union[Dict[str, Any], str]] = Field(default=None, alias="lastEvaluatedKey")
    is_queue_empty: Optional[bool] = Field(default=None, alias="IsQueueEmpty")


# ===== Import workflow =====


class ScanTableInput(_StateModel):
    last_evaluated_key: Optional[Dict[str, Any]] = Field(default=None, alias="LastEvaluatedKey")

    @field_validator("last_evaluated_key", mode="before")
    @classmethod
    def _blank_key(cls, v: Any) -> Optional[Dict[str, Any]]:  # type: ignore[override]
        return v if isinstance(v, dict) and v else None


class ScanTableResult(_StateModel):
    last_evaluated_key: Optional[Dict[str, Any]] = Field(default=None, alias="LastEvaluatedKey")
    all_groups_processed: str = Field(alias="AllGroupsProcessed")


class ImportUsersResult(_StateModel):
    import_job_status: str = Field(default="", alias="ImportJobStatus")
    queue_empty: bool = Field(default=True, alias="QueueEmpty")
    import_job_id: Optional[str] = Field(default=None, alias="ImportJobId")


class UpdateNewUsersResult(_StateModel):
    queue_empty: bool = Field(default=True, alias="QueueEmpty")
