"""
Pytest configuration and fixtures
"""

import pytest
from datetime import datetime, timedelta

from core.retry import NO_RETRY
from fakes import FakeConnector, FakeTable, column, connection_config
from orchestration.context import WorkflowContext
from orchestration.control import WorkflowControl
from orchestration.stores import Stores
from models.base import WorkflowKind
from schemas.workflow import WorkflowStatus


@pytest.fixture
def orders_table():
    """Orders with an updated_at cursor column"""
    base = datetime(2024, 1, 15, 10, 0, 0)
    return FakeTable(
        name="orders",
        schema="public",
        columns=[
            column("order_id", "integer", primary_key=True, nullable=False),
            column("customer_id", "integer"),
            column("amount", "numeric"),
            column("updated_at", "timestamp without time zone"),
        ],
        rows=[
            {
                "order_id": i,
                "customer_id": 100 + (i % 3),
                "amount": 10.0 * i,
                "updated_at": base + timedelta(hours=i),
            }
            for i in range(1, 6)
        ],
    )


@pytest.fixture
def customers_table():
    return FakeTable(
        name="customers",
        schema="public",
        columns=[
            column("id", "integer", primary_key=True, nullable=False),
            column("email", "varchar(255)"),
            column("notes", "text"),
        ],
        rows=[
            {"id": 100, "email": "a@example.com", "notes": "first"},
            {"id": 101, "email": "b@example.com", "notes": "second"},
            {"id": 102, "email": "c@example.com", "notes": "third"},
        ],
    )


@pytest.fixture
def fake_connector(orders_table, customers_table):
    return FakeConnector(tables=[orders_table, customers_table])


@pytest.fixture
def stores():
    """In-memory stores"""
    return Stores()


@pytest.fixture
def connection():
    return connection_config()


@pytest.fixture
def context():
    """Workflow context with no retries and the default error budget"""
    status = WorkflowStatus(workflow_id="wf-test", connection_id="warehouse", kind=WorkflowKind.DATA_SYNC)
    return WorkflowContext(
        status=status,
        control=WorkflowControl("wf-test"),
        retry_policy=NO_RETRY,
        error_budget=10,
    )
