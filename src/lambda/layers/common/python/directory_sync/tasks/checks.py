"""Pre-flight checks run at the start of a workflow execution."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable

from botocore.exceptions import BotoCoreError, ClientError

from directory_sync.errors import ConfigurationError, QueueNotEmptyError
from directory_sync.utils.clock import sleep_ms
from directory_sync.utils.logger import get_logger


logger = get_logger(__name__)

IMPORT_WORKFLOW = "ImportWorkflow"
QUEUE_COUNT_ATTRIBUTES = (
    "ApproximateNumberOfMessages",
    "ApproximateNumberOfMessagesVisible",
    "ApproximateNumberOfMessagesNotVisible",
    "ApproximateNumberOfMessagesDelayed",
)


def check_new_user_pool(
    cognito: Any, user_pool_id: str, *, sleep: Callable[[float], None] = sleep_ms
) -> Dict[str, Any]:
    """Report whether the import target holds no users and no groups.

    A failed listing is reported as a non-empty pool so the import is not
    started against a pool whose content is unknown.
    """
    empty = True
    try:
        users = cognito.list_users(UserPoolId=user_pool_id).get("Users") or []
        if users:
            logger.warning("New user pool already has users", extra={"count": len(users)})
            empty = False
        else:
            sleep(1000)
            groups = cognito.list_groups(UserPoolId=user_pool_id).get("Groups") or []
            if groups:
                logger.warning("New user pool already has groups", extra={"count": len(groups)})
                empty = False
    except (ClientError, BotoCoreError) as exc:
        logger.error("Unable to list the new user pool", extra={"error": str(exc)})
        empty = False
    return {"result": {"NewUserPoolEmpty": empty}}


def assert_queue_empty(sqs: Any, queue_url: str) -> bool:
    resp = sqs.get_queue_attributes(QueueUrl=queue_url, AttributeNames=["All"])
    attributes = resp.get("Attributes") or {}
    for name in QUEUE_COUNT_ATTRIBUTES:
        if name in attributes and str(attributes[name]) != "0":
            raise QueueNotEmptyError(
                f'Queue ({queue_url}) is not empty. Expected a value of "0" for attribute ({name}) and found '
                f'value "{attributes[name]}" instead. Please purge this queue prior to running this workflow'
            )
    return True


def check_workflow_queues(
    sqs: Any, workflow_name: str, queue_urls: Iterable[str], state_input: Dict[str, Any]
) -> Dict[str, Any]:
    if workflow_name != IMPORT_WORKFLOW:
        raise ConfigurationError(f"Unknown State Machine Name: {workflow_name}")
    result = dict(state_input)
    result["QueuesStartedOutEmpty"] = all([assert_queue_empty(sqs, url) for url in queue_urls])
    logger.info("Workflow queues are empty", extra={"workflow": workflow_name})
    return {"result": result}


def check_state_machine_executions(sfn: Any, state_machine_arn: str, execution_id: str) -> Dict[str, Any]:
    resp = sfn.list_executions(stateMachineArn=state_machine_arn, statusFilter="RUNNING")
    executions = resp.get("executions") or []
    only_this = len(executions) == 1 and executions[0].get("executionArn") == execution_id
    logger.info("Checked running executions", extra={"running": len(executions), "only_this": only_this})
    return {"result": {"OnlyThisStateMachineExecution": only_this}}
