"""Shared test fixtures for the HSA reimbursement ledger tests."""

import os
from collections.abc import Callable, Iterator
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

# Set dummy AWS credentials so module-level boto3.client() calls don't fail during import.
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from hsa_reimbursements.api import create_app
from hsa_reimbursements.auth import RequestContext
from hsa_reimbursements.config import Settings
from hsa_reimbursements.db import create_tables, make_engine, make_session_factory
from hsa_reimbursements.expenses import create_expense
from hsa_reimbursements.models import Category, Expense

TEST_JWT_KEY = "test-signing-key"


@pytest.fixture
def settings() -> Settings:
    return Settings(bucket_name="test-bucket", jwt_key=TEST_JWT_KEY, database_url="sqlite://")


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = make_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine: Engine) -> Iterator[Session]:
    with make_session_factory(engine)() as session:
        yield session


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(user_id="user-1", email="user1@example.com")


@pytest.fixture
def other_ctx() -> RequestContext:
    return RequestContext(user_id="user-2", email="user2@example.com")


@pytest.fixture
def category(session: Session) -> Callable[[str], Category]:
    """Look up a seeded category by name."""

    def _get(name: str) -> Category:
        return session.query(Category).filter_by(name=name).one()

    return _get


@pytest.fixture
def make_expense(session: Session, ctx: RequestContext) -> Callable[..., Expense]:
    """Factory fixture to create expenses for the default user.

    Usage:
        expense = make_expense(amount="100.00", date_paid=date(2025, 3, 1))
    """

    def _make(
        amount: str | Decimal = "100.00",
        date_paid: date = date(2025, 3, 1),
        payment_method: str = "HSA card",
        category_id: str | None = None,
        description: str | None = "Office visit",
        owner: RequestContext | None = None,
    ) -> Expense:
        return create_expense(
            session,
            owner or ctx,
            amount=amount,
            date_paid=date_paid,
            payment_method=payment_method,
            category_id=category_id,
            description=description,
        )

    return _make


def _make_token(
    sub: str = "user-1",
    key: str = TEST_JWT_KEY,
    expires_in: timedelta = timedelta(hours=1),
    **claims: object,
) -> str:
    payload: dict[str, object] = {"sub": sub, "email": f"{sub}@example.com", **claims}
    payload["exp"] = datetime.now(tz=UTC) + expires_in
    return jwt.encode(payload, key, algorithm="HS256")


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory fixture to sign test bearer tokens."""
    return _make_token


@pytest.fixture
def client(settings: Settings, engine: Engine) -> Iterator[TestClient]:
    with TestClient(create_app(settings, engine)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token()}"}
