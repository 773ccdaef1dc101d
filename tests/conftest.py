"""Pytest configuration and fixtures for square booking payment tests.

This module provides reusable fixtures for testing:
- DynamoDB and SSM mocking with moto
- Seeded users and squares
- Service instances wired against the mocked tables
- Sample checkout metadata
"""

import os
from typing import Any, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-squarebooking")
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("STRIPE_TEST_MODE", "true")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]
TEST_WEBHOOK_SECRET = "whsec_test_secret_for_testing"
TEST_USER_ID = "u1"
TEST_SQUARE_ID = "sq1"
TEST_SHARED_SQUARE_ID = "sq-shared"


# === Service Singletons ===


@pytest.fixture(autouse=True)
def reset_service_singletons() -> Generator[None, None, None]:
    """Reset cached services before and after each test.

    Tests using mock_aws need fresh boto3 clients created inside the mock
    context rather than ones cached from a previous test.
    """
    from squarebooking_api.dependencies import reset_services

    reset_services()
    yield
    reset_services()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


def _create_tables(client: Any) -> None:
    client.create_table(
        TableName=f"{TABLE_PREFIX}-options",
        KeySchema=[{"AttributeName": "key", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "key", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    client.create_table(
        TableName=f"{TABLE_PREFIX}-bookings",
        KeySchema=[{"AttributeName": "booking_id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "booking_id", "AttributeType": "S"},
            {"AttributeName": "square_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "square_id-index",
                "KeySchema": [{"AttributeName": "square_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.create_table(
        TableName=f"{TABLE_PREFIX}-booking-references",
        KeySchema=[{"AttributeName": "reference", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "reference", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    client.create_table(
        TableName=f"{TABLE_PREFIX}-users",
        KeySchema=[{"AttributeName": "user_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "user_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    client.create_table(
        TableName=f"{TABLE_PREFIX}-squares",
        KeySchema=[{"AttributeName": "square_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "square_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )


def _seed_directories(resource: Any) -> None:
    users = resource.Table(f"{TABLE_PREFIX}-users")
    users.put_item(Item={"user_id": TEST_USER_ID, "email": "ana@example.com", "name": "Ana"})
    users.put_item(Item={"user_id": "u2", "email": "ben@example.com", "name": "Ben"})

    squares = resource.Table(f"{TABLE_PREFIX}-squares")
    squares.put_item(Item={"square_id": TEST_SQUARE_ID, "name": "Court 1", "capacity": 1})
    squares.put_item(
        Item={"square_id": TEST_SHARED_SQUARE_ID, "name": "Open Lane", "capacity": 4}
    )


@pytest.fixture
def mock_tables(aws_credentials: None) -> Generator[None, None, None]:
    """Create all DynamoDB tables, seed users/squares and store Stripe secrets."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        _create_tables(client)
        _seed_directories(boto3.resource("dynamodb", region_name="eu-west-1"))

        ssm = boto3.client("ssm", region_name="eu-west-1")
        environment = os.environ["ENVIRONMENT"]
        ssm.put_parameter(
            Name=f"/squarebooking/{environment}/stripe/webhook_secret",
            Value=TEST_WEBHOOK_SECRET,
            Type="SecureString",
        )
        ssm.put_parameter(
            Name=f"/squarebooking/{environment}/stripe/test_secret_key",
            Value="sk_test_abc123",
            Type="SecureString",
        )
        yield


# === Service Fixtures ===


@pytest.fixture
def db(mock_tables: None) -> Any:
    from squarebooking.services.dynamodb import get_dynamodb_service

    return get_dynamodb_service()


@pytest.fixture
def option_store(db: Any) -> Any:
    from squarebooking.services.option_store import OptionStore

    return OptionStore(db)


@pytest.fixture
def booking_store(db: Any) -> Any:
    from squarebooking.services.booking_store import BookingStore

    return BookingStore(db)


@pytest.fixture
def ledger(option_store: Any) -> Any:
    from squarebooking.services.idempotency_ledger import IdempotencyLedger

    return IdempotencyLedger(option_store)


@pytest.fixture
def notices(option_store: Any) -> Any:
    from squarebooking.services.success_notice import SuccessNoticeStore

    return SuccessNoticeStore(option_store)


@pytest.fixture
def materializer(db: Any, booking_store: Any) -> Any:
    from squarebooking.services.directories import SquareDirectory, UserDirectory
    from squarebooking.services.materializer import BookingMaterializer

    return BookingMaterializer(booking_store, UserDirectory(db), SquareDirectory(db))


@pytest.fixture
def oracle(booking_store: Any) -> Any:
    from squarebooking.services.existence_oracle import BookingExistenceOracle

    return BookingExistenceOracle(booking_store, scan_fallback=True)


# === Sample Data Fixtures ===


@pytest.fixture
def checkout_metadata() -> dict[str, str]:
    """Metadata as attached to a checkout session for square sq1."""
    return {
        "user_id": TEST_USER_ID,
        "square_id": TEST_SQUARE_ID,
        "ds": "2026-07-01",
        "de": "2026-07-01",
        "ts": "10:00",
        "te": "11:00",
        "quantity": "1",
        "player-names": "Ana, Ben",
        "notes": "Bring balls",
    }
