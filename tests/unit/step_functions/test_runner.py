import json
import runpy

import pytest

from tests.fixtures.clients import BotoStub, StepFunctionsStub


SM_ARN = "arn:aws:states:us-east-1:123456789012:stateMachine:ImportWorkflow-AbCdEf"


def load_runner(monkeypatch, sfn):
    mod = runpy.run_path("src/step_functions/workflows/runner.py")
    monkeypatch.setitem(mod["start_workflow_execution"].__globals__, "boto3", BotoStub(stepfunctions=sfn))
    return mod


def test_start_import_execution(monkeypatch) -> None:
    """
    Given: 새 사용자 풀 ID
    When: 가져오기 워크플로 실행 시작
    Then: NewUserPoolId 입력과 실행 이름 전달, 실행 ARN 반환
    """
    sfn = StepFunctionsStub()
    mod = load_runner(monkeypatch, sfn)

    arn = mod["start_workflow_execution"](
        sm_arn=SM_ARN,
        payload=mod["ImportExecutionInput"](new_user_pool_id=" us-east-1_New "),
        name="import-1",
    )

    assert arn == "arn:states:stub"
    assert sfn.started[0]["stateMachineArn"] == SM_ARN
    assert json.loads(sfn.started[0]["input"]) == {"NewUserPoolId": "us-east-1_New"}
    assert sfn.started[0]["name"] == "import-1"


def test_start_export_execution_with_empty_input(monkeypatch) -> None:
    """
    Given: 내보내기 입력
    When: 실행 시작
    Then: 빈 JSON 입력, name 생략
    """
    sfn = StepFunctionsStub()
    mod = load_runner(monkeypatch, sfn)

    mod["start_workflow_execution"](sm_arn=SM_ARN, payload=mod["ExportExecutionInput"]())

    assert json.loads(sfn.started[0]["input"]) == {}
    assert "name" not in sfn.started[0]


def test_blank_pool_id_is_rejected(monkeypatch) -> None:
    """
    Given: 공백 풀 ID
    When: 실행 시작
    Then: ValueError, 실행은 시작되지 않음
    """
    sfn = StepFunctionsStub()
    mod = load_runner(monkeypatch, sfn)

    with pytest.raises(ValueError):
        mod["start_workflow_execution"](sm_arn=SM_ARN, payload=mod["ImportExecutionInput"](new_user_pool_id="  "))

    assert sfn.started == []
