import os
import tempfile
import uuid
from decimal import Decimal

# CRITICAL: Set environment variables BEFORE any costcontrol imports
# These must be set before costcontrol.config.settings is loaded
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "test_costcontrol.db")
os.environ["SECRET_KEY"] = "test-secret-key-1234567890"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"  # Ensure /api prefix is used in tests
os.environ["IDEMPOTENCY_REQUIRED"] = "true"
os.environ.pop("ROLE_CAPABILITIES", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from costcontrol import models
from costcontrol.api import deps
from costcontrol.core.tenancy import Principal, TenantContext
from costcontrol.database import Base, get_db, engine as app_engine
from costcontrol.main import app

TEST_ENGINE = app_engine

TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=TEST_ENGINE, future=True
)

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """Fresh tables and dependency overrides for every test."""
    original_overrides = dict(app.dependency_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


def make_principal(role: str = "admin", tenant_id: str = TENANT_A, principal_id: str = "u-1"):
    return Principal(id=principal_id, tenant_id=tenant_id, role=role, email=f"{role}@test.local")


def make_ctx(role: str = "admin", tenant_id: str = TENANT_A) -> TenantContext:
    return TenantContext(tenant_id=tenant_id, principal=make_principal(role, tenant_id))


@pytest.fixture
def login_as():
    """Authenticate subsequent requests as a principal with ``role`` in ``tenant_id``."""

    def _login(role: str = "admin", tenant_id: str = TENANT_A, principal_id: str = "u-1"):
        principal = make_principal(role, tenant_id, principal_id)
        app.dependency_overrides[deps.get_current_principal] = lambda: principal
        return principal

    return _login


@pytest.fixture
def make_contract(db_session):
    def _make(
        tenant_id: str = TENANT_A,
        total_value=Decimal("1000.00"),
        currency: str = "USD",
        code: str | None = None,
    ) -> models.Contract:
        contract = models.Contract(
            tenant_id=tenant_id,
            code=code or f"CT-{uuid.uuid4().hex[:6]}",
            name="Warehouse fit-out",
            currency=currency,
            total_value=None if total_value is None else Decimal(str(total_value)),
        )
        db_session.add(contract)
        db_session.commit()
        db_session.refresh(contract)
        return contract

    return _make


def idem(key: str | None = None) -> dict:
    return {"Idempotency-Key": key or str(uuid.uuid4())}
