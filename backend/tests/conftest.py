import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401 (register models with Base.metadata)
from app.core.config import settings
from app.core.database import Base, get_db
from app.main import app as fastapi_app
from app.models import Account, CreditPackage, CreditToolCost, GamificationTask
from app.services.credits import RealtimeNotifier, ToolCostCatalog

# In-memory SQLite for tests, no PostgreSQL dependency needed
TEST_DATABASE_URL = "sqlite://"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Provide a test database session."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_account(db):
    """Factory for extra accounts."""

    def _make(name: str = "Test Account", email: str | None = None) -> Account:
        account = Account(full_name=name, email=email or f"{uuid.uuid4().hex[:8]}@example.com")
        db.add(account)
        db.commit()
        db.refresh(account)
        return account

    return _make


@pytest.fixture
def account(make_account) -> Account:
    return make_account("Ana Torres", "ana@example.com")


@pytest.fixture
def other_account(make_account) -> Account:
    return make_account("Luis Gómez", "luis@example.com")


@pytest.fixture
def account_id(account) -> uuid.UUID:
    return account.id


@pytest.fixture
def tool_costs(db) -> list[CreditToolCost]:
    """Billable tools: one paid at 6, one cheap, one free, one inactive."""
    rows = [
        CreditToolCost(tool_type="contract_review", tool_name="Contract review", credit_cost=6),
        CreditToolCost(tool_type="chat", tool_name="Chat assistant", credit_cost=1),
        CreditToolCost(tool_type="report_export", tool_name="Report export", credit_cost=0),
        CreditToolCost(
            tool_type="legacy_search",
            tool_name="Legacy search",
            credit_cost=4,
            is_active=False,
        ),
    ]
    db.add_all(rows)
    db.commit()
    return rows


@pytest.fixture
def catalog(db, tool_costs) -> ToolCostCatalog:
    catalog = ToolCostCatalog()
    catalog.refresh(db)
    return catalog


@pytest.fixture
def notifier() -> RealtimeNotifier:
    return RealtimeNotifier(max_queue_size=10)


@pytest.fixture
def package(db) -> CreditPackage:
    package = CreditPackage(name="Professional", credits=500, bonus_credits=50, price_cop=90000)
    db.add(package)
    db.commit()
    db.refresh(package)
    return package


@pytest.fixture
def first_purchase_task(db) -> GamificationTask:
    task = GamificationTask(
        task_key=settings.FIRST_PURCHASE_TASK_KEY,
        name="First purchase",
        task_type="onetime",
        credit_reward=25,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


@pytest.fixture
def client(db, catalog, notifier):
    """TestClient with overridden DB dependency and app services."""

    def _override_get_db():
        try:
            yield db
        finally:
            pass

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.state.tool_cost_catalog = catalog
    fastapi_app.state.notifier = notifier
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()
