import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterator

import boto3
import pytest


# Ensure the common layer is importable at collection time (module import stage)
_repo_root = Path(__file__).resolve().parents[1]
# Ensure project root and 'src' are on sys.path for flexible imports
_repo_root_str = str(_repo_root)
_src_path_str = str(_repo_root / "src")
if _repo_root_str not in sys.path:
    sys.path.insert(0, _repo_root_str)
if _src_path_str not in sys.path:
    sys.path.insert(0, _src_path_str)
_layer_path = _repo_root / "src" / "lambda" / "layers" / "common" / "python"
_layer_str = str(_layer_path)
if _layer_str not in sys.path:
    sys.path.insert(0, _layer_str)


WORKFLOW_ENV: Dict[str, str] = {
    "ENVIRONMENT": "test",
    "USER_POOL_ID": "us-east-1_Primary",
    "BACKUP_TABLE_NAME": "backup-table",
    "COGNITO_TPS": "10",
    "QUEUE_URL": "https://sqs.us-east-1.amazonaws.com/123456789012/export-queue",
    "NEW_USERS_QUEUE_URL": "https://sqs.us-east-1.amazonaws.com/123456789012/new-users",
    "NEW_USERS_UPDATES_QUEUE_URL": "https://sqs.us-east-1.amazonaws.com/123456789012/new-users-updates",
    "USER_IMPORT_CLOUDWATCH_ROLE_ARN": "arn:aws:iam::123456789012:role/import-logs",
    "USER_IMPORT_JOB_MAPPING_FILES_BUCKET": "mapping-files",
    "NOTIFICATION_TOPIC": "arn:aws:sns:us-east-1:123456789012:workflow-notifications",
    "SNS_MESSAGE_PREFERENCE": "INFO_AND_ERRORS",
    "SEND_METRIC": "No",
    "TYPE_USER": "user",
    "TYPE_GROUP": "group",
    "TYPE_TIMESTAMP": "timestamp",
}


@pytest.fixture(autouse=True)
def aws_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Ensure default AWS region is set for moto/boto3 clients and clear cross-test env leaks."""
    monkeypatch.setenv("AWS_REGION", os.environ.get("AWS_REGION", "us-east-1"))
    monkeypatch.setenv("AWS_DEFAULT_REGION", os.environ.get("AWS_DEFAULT_REGION", "us-east-1"))
    # Provide dummy credentials so botocore signing doesn't fail under moto
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", os.environ.get("AWS_ACCESS_KEY_ID", "testing"))
    monkeypatch.setenv(
        "AWS_SECRET_ACCESS_KEY",
        os.environ.get("AWS_SECRET_ACCESS_KEY", "testing"),
    )
    monkeypatch.setenv("AWS_SESSION_TOKEN", os.environ.get("AWS_SESSION_TOKEN", "testing"))

    # Solution identifiers would add a user agent suffix to every client
    monkeypatch.delenv("SOLUTION_ID", raising=False)
    monkeypatch.delenv("SOLUTION_VERSION", raising=False)
    yield


@pytest.fixture(autouse=True)
def workflow_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Apply the workflow Lambdas' environment variables."""
    for name, value in WORKFLOW_ENV.items():
        monkeypatch.setenv(name, value)
    yield


@pytest.fixture(autouse=True)
def pythonpath() -> Iterator[None]:
    """Ensure the Lambda layer 'directory_sync' package is importable in tests.

    Adds src/lambda/layers/common/python to sys.path so that
    `import directory_sync.*` used by Lambda handlers works when loading via runpy.
    """
    repo_root = Path(__file__).resolve().parents[1]
    layer_path = repo_root / "src" / "lambda" / "layers" / "common" / "python"
    layer_str = str(layer_path)
    if layer_str not in sys.path:
        sys.path.insert(0, layer_str)
    yield


@pytest.fixture
def settings():
    from directory_sync.models.settings import EnvSettings

    return EnvSettings.load()


@pytest.fixture
def make_queue() -> Callable[[str], str]:
    def _create(name: str) -> str:
        client = boto3.client("sqs", region_name=os.environ.get("AWS_REGION", "us-east-1"))
        return client.create_queue(QueueName=name)["QueueUrl"]

    return _create


@pytest.fixture
def make_backup_table() -> Callable[[str], Any]:
    def _create(name: str) -> Any:
        dynamodb = boto3.resource("dynamodb", region_name=os.environ.get("AWS_REGION", "us-east-1"))
        table = dynamodb.create_table(
            TableName=name,
            KeySchema=[
                {"AttributeName": "id", "KeyType": "HASH"},
                {"AttributeName": "type", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "id", "AttributeType": "S"},
                {"AttributeName": "type", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        table.wait_until_exists()
        return table

    return _create


def pytest_configure(config):
    """Configure pytest with essential markers."""
    config.addinivalue_line("markers", "unit: unit test")
    config.addinivalue_line("markers", "integration: integration test")
    config.addinivalue_line("markers", "export: export workflow test")
    config.addinivalue_line("markers", "import_workflow: import workflow test")


def pytest_collection_modifyitems(config, items):
    """Add markers based on file location."""
    rootdir = Path(config.rootdir)

    for item in items:
        rel_path = Path(item.fspath).relative_to(rootdir)
        if "unit" in rel_path.parts:
            item.add_marker(pytest.mark.unit)
        if "integration" in rel_path.parts:
            item.add_marker(pytest.mark.integration)
