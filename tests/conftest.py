"""Shared test fixtures and configuration."""
import copy
import os
from pathlib import Path
from unittest.mock import Mock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("TWILIO_ACCOUNT_SID", "ACtest")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+815012345678")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BASE_URL", "https://ivr.example.com")

from app.main import app
from app.db.database import Base, get_db
from app.core.dependencies import get_dialer, get_notification_dispatcher
from app.services.call_session.engine import ExecutionEngine
from app.services.call_session.manager import CallSessionManager
from app.services.notifications.dispatcher import InMemoryNotificationDispatcher
from app.services.scenario.conditions import ConditionEvaluator
from app.services.scenario.graph import ScenarioGraph
from app.services.scenario.repository import ScenarioRepository
from app.services.scenario.validator import ScenarioValidator


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SCENARIO_ID = "11111111-2222-3333-4444-555555555555"

# q1 (DTMF yes/no) ends the call on "1" and moves to the optional recording on "2"
SAMPLE_SCENARIO = {
    "id": SCENARIO_ID,
    "name": "Interest survey",
    "description": "Yes ends the call, no asks for a comment",
    "is_active": True,
    "scenario_data": {
        "questions": [
            {
                "id": "q1",
                "text": "Are you interested? Press 1 for yes, 2 for no.",
                "type": "dtmf",
                "required": True,
                "options": [
                    {"key": "1", "label": "yes", "value": "yes"},
                    {"key": "2", "label": "no", "value": "no"},
                ],
            },
            {
                "id": "q2",
                "text": "Please tell us why after the beep.",
                "type": "voice_recording",
                "required": False,
                "max_length": 30,
            },
        ],
        "transitions": [
            {"from_question_id": "q1", "condition": "answer == '1'", "to_question_id": None},
            {"from_question_id": "q1", "condition": "answer == '2'", "to_question_id": "q2"},
        ],
    },
}

RECORDING_URL = "https://api.twilio.com/2010-04-01/Accounts/ACtest/Recordings/RE123"


@pytest.fixture
def scenario_data():
    """A fresh copy of the sample scenario payload."""
    return copy.deepcopy(SAMPLE_SCENARIO)


@pytest.fixture
def sample_graph(scenario_data):
    """Active, valid sample scenario graph."""
    return ScenarioGraph.from_dict(scenario_data)


@pytest.fixture
def condition_evaluator():
    return ConditionEvaluator()


@pytest.fixture
def validator(condition_evaluator):
    return ScenarioValidator(condition_evaluator)


@pytest.fixture
def engine(validator, condition_evaluator):
    """Execution engine allowing two re-prompts."""
    return ExecutionEngine(validator, condition_evaluator, max_retries=2)


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(test_db_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def test_scenario_path():
    """Return path to test scenario YAML file."""
    return Path(__file__).parent / "fixtures" / "test_scenario.yaml"


@pytest.fixture
async def scenario_repository(test_db, validator):
    return ScenarioRepository(test_db, validator)


@pytest.fixture
async def stored_scenario(scenario_repository, sample_graph, validator):
    """Save the sample scenario (active) and return its id."""
    return await scenario_repository.save_scenario(sample_graph, validator.validate(sample_graph))


@pytest.fixture
def notification_dispatcher():
    return InMemoryNotificationDispatcher()


@pytest.fixture
async def session_manager(test_db, engine, scenario_repository, notification_dispatcher):
    return CallSessionManager(test_db, engine, scenario_repository, notification_dispatcher)


@pytest.fixture
def mock_dialer():
    """Outbound dialer that never reaches Twilio."""
    dialer = Mock()
    dialer.place_call = Mock(return_value="CAtest0001")
    return dialer


@pytest.fixture
def override_get_db(test_db):
    """Override get_db dependency with test database."""
    async def _override_get_db():
        yield test_db
    return _override_get_db


@pytest.fixture
async def test_client(override_get_db, mock_dialer, notification_dispatcher):
    """Create HTTP test client against the app with overrides."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dialer] = lambda: mock_dialer
    app.dependency_overrides[get_notification_dispatcher] = lambda: notification_dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clean_call_sessions():
    """Clean up call sessions before and after tests."""
    from app.services.call_session import manager
    manager._calls.clear()
    manager._start_locks.clear()
    yield
    manager._calls.clear()
    manager._start_locks.clear()
