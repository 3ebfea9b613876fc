"""Shared fixtures: in-memory Tortoise database and an authenticated API client."""

import os

# Must be set before services.config is imported anywhere.
os.environ["DB_URL"] = "sqlite://:memory:"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "password123"
os.environ["SECRET_KEY"] = "test-access-secret"
os.environ["REFRESH_SECRET"] = "test-refresh-secret"

import uuid
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from tortoise import Tortoise

from schemas import Principal

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "password123"
FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
PDF_BYTES = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF\n"


@pytest.fixture
async def db() -> AsyncGenerator[None, None]:
    """Fresh in-memory schema per test."""
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": ["models"]})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def fixed_now() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def admin() -> Principal:
    return Principal(role="admin", email=ADMIN_EMAIL)


@pytest.fixture
def customer_a() -> Principal:
    return Principal(role="customer", email="a@x.com")


@pytest.fixture
def customer_b() -> Principal:
    return Principal(role="customer", email="b@x.com")


def invoice_fields(**overrides) -> dict:
    fields = {
        "invoice_number": "A-1",
        "customer_email": "a@x.com",
        "due_date": "2025-01-01",
        "invoice_amount": "100.00",
    }
    fields.update(overrides)
    return fields


# ---------- HTTP ----------

@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client with the lifespan running (schema + seeded admin)."""
    from main import app

    with TestClient(app) as c:
        yield c


def login(client: TestClient, email: str, password: str) -> dict[str, str]:
    response = client.post("/login/access-token", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client: TestClient) -> dict[str, str]:
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def customer_headers(client: TestClient, admin_headers: dict[str, str]) -> Callable[[str], dict[str, str]]:
    """Create a customer account and return its auth headers."""

    def make(email: str) -> dict[str, str]:
        password = f"pw-{uuid.uuid4().hex[:12]}"
        response = client.post(
            "/users",
            json={"email": email, "password": password, "role": "customer"},
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        return login(client, email, password)

    return make
