import os

# settings are read once at import, so these must be in place before the app loads
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["COMPLETION_PROVIDER"] = "openai"

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from bridge.assistant import CompletionError, LLMAssistant
from bridge.models import ApiKey, ChatMemory, Subscription
from bridge.store import DataStore, init_db


class StubAssistant(LLMAssistant):
    """Completion provider that answers with a canned reply and records prompts."""

    def __init__(self, metrics, reply="Hi! How can I help you today?"):
        super().__init__(metrics=metrics, fallback_reply="fallback reply")
        self.model_version = "stub"
        self.reply = reply
        self.calls = []

    def get_completion(self, messages):
        self.calls.append(messages)
        return self.reply


class UnreachableAssistant(LLMAssistant):
    def __init__(self, metrics):
        super().__init__(metrics=metrics, fallback_reply="fallback reply")
        self.model_version = "unreachable"

    def get_completion(self, messages):
        raise CompletionError("connection refused")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def metrics():
    return MagicMock()


@pytest.fixture
def store(engine, metrics):
    return DataStore(engine=engine, metrics=metrics)


@pytest.fixture
def broken_store(metrics):
    # no tables were created, so every query fails inside the database driver
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield DataStore(engine=engine, metrics=metrics)
    engine.dispose()


@pytest.fixture
def stub_assistant(metrics):
    return StubAssistant(metrics)


@pytest.fixture
def add_key(engine):
    def _add_key(key_value="abc", status="active", user_id="user-1", key_id=None, context="We sell bikes", faqs=None):
        record = ApiKey(
            id=key_id or f"key-{key_value}",
            user_id=user_id,
            key_value=key_value,
            status=status,
            context=context,
            manual_faqs=faqs or [],
        )
        with Session(engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
        return record

    return _add_key


@pytest.fixture
def add_subscription(engine):
    def _add_subscription(user_id="user-1", plan="Pro", status="active", ends_at=None):
        record = Subscription(user_id=user_id, plan=plan, status=status, ends_at=ends_at)
        with Session(engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
        return record

    return _add_subscription


@pytest.fixture
def stored_history(engine):
    def _stored_history(session_id):
        with Session(engine) as session:
            memory = session.get(ChatMemory, session_id)
            return None if memory is None else list(memory.history_json)

    return _stored_history


@pytest.fixture
def make_client(store, metrics):
    import main

    def _make_client(assistant):
        main.app.dependency_overrides[main.get_store] = lambda: store
        main.app.dependency_overrides[main.get_assistant] = lambda: assistant
        main.app.dependency_overrides[main.get_metrics] = lambda: metrics
        return TestClient(main.app)

    yield _make_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(make_client, stub_assistant):
    return make_client(stub_assistant)
