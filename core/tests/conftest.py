from __future__ import annotations

import boto3  # type: ignore[import]
import pytest
from moto import mock_aws  # type: ignore[import]

from collabhub.database.client import DynamoConfig, build_store
from collabhub.database.schema import create_table

TABLE_NAME = "collabhub-test"
REGION = "us-east-1"


@pytest.fixture(autouse=True)
def aws_env(monkeypatch) -> None:
    # Never reach a real account from tests
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.delenv("DYNAMODB_ENDPOINT_URL", raising=False)


@pytest.fixture
def dynamo():
    with mock_aws():
        resource = boto3.resource("dynamodb", region_name=REGION)
        create_table(resource, TABLE_NAME)
        yield resource


@pytest.fixture
def store(dynamo):
    config = DynamoConfig(table_name=TABLE_NAME, region=REGION, cursor_secret="test-secret")
    return build_store(config, resource=dynamo)


@pytest.fixture
def table(dynamo):
    return dynamo.Table(TABLE_NAME)
