"""Typed helper to start export/import workflow executions.

Example
-------

from src.step_functions.workflows.runner import (
    ImportExecutionInput,
    start_workflow_execution,
)

execution_arn = start_workflow_execution(
    sm_arn="arn:aws:states:us-east-1:123456789012:stateMachine:ImportWorkflow-AbCdEf",
    payload=ImportExecutionInput(new_user_pool_id="us-east-1_AbCdEfGhI"),
)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import boto3


@dataclass
class ExportExecutionInput:
    """Input payload for the export workflow; it reads everything from its environment."""

    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.comment:
            payload["Comment"] = self.comment
        return payload


@dataclass
class ImportExecutionInput:
    """Input payload for the import workflow."""

    new_user_pool_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"NewUserPoolId": self.new_user_pool_id.strip()}


WorkflowInput = Union[ExportExecutionInput, ImportExecutionInput]


def start_workflow_execution(
    *,
    sm_arn: str,
    payload: WorkflowInput,
    region_name: Optional[str] = None,
    name: Optional[str] = None,
) -> str:
    """Start the workflow state machine execution and return the execution ARN."""
    _validate_payload(payload)

    client = boto3.client("stepfunctions", region_name=region_name)
    args: Dict[str, Any] = {
        "stateMachineArn": sm_arn,
        "input": json.dumps(payload.to_dict()),
    }
    if name:
        args["name"] = name

    resp = client.start_execution(**args)
    return str(resp.get("executionArn", ""))


def _validate_payload(payload: WorkflowInput) -> None:
    if isinstance(payload, ImportExecutionInput) and not payload.new_user_pool_id.strip():
        raise ValueError("new_user_pool_id is required for import executions")
