from sqlmodel import SQLModel, Session, select, and_
from sqlalchemy.exc import SQLAlchemyError
from bridge.models import ApiKey, Subscription, ChatMemory, ApiKeyLog, ChatTurn, utcnow
from bridge.logging_config import get_logger
from typing import Any, List, NamedTuple, Optional
import statsd
import uuid

logger = get_logger(__name__)

FREE_PLAN = "Free"
VALID_ROLES = ("user", "assistant")

class AccessResult(NamedTuple):
    valid: bool
    config: Optional[ApiKey]
    plan: str

DENIED = AccessResult(False, None, FREE_PLAN)

def init_db(engine):
    # create all tables
    SQLModel.metadata.create_all(engine)

def subscription_rank(subscription: Subscription):
    """
    Orders active subscriptions of one user so that max() picks the winner:
    open-ended subscriptions first, then the one expiring last, then the
    oldest record.
    """
    tie_break = -(subscription.id or 0)
    if subscription.ends_at is None:
        return (1, 0.0, tie_break)
    return (0, subscription.ends_at.timestamp(), tie_break)

def parse_history(raw: Any) -> List[ChatTurn]:
    if not isinstance(raw, list):
        return []
    history = []
    for entry in raw:
        # skip anything that isn't a well formed user/assistant turn
        if not isinstance(entry, dict):
            continue
        role = entry.get("role")
        content = entry.get("content")
        if role not in VALID_ROLES or not isinstance(content, str):
            continue
        history.append(ChatTurn(role=role, content=content))
    return history

def append_turns(history: List[ChatTurn], message: str, reply: str, limit: int = 10) -> List[ChatTurn]:
    updated = list(history) + [
        ChatTurn(role="user", content=message),
        ChatTurn(role="assistant", content=reply),
    ]
    # oldest turns are dropped first
    return updated[-limit:] if limit > 0 else []

class DataStore:
    def __init__(self, engine, metrics: statsd.StatsClient):
        self.engine = engine
        self.metrics = metrics

    def check_access(self, api_key: Optional[str]) -> AccessResult:
        clean_key = (api_key or "").strip()
        if not clean_key:
            return DENIED

        try:
            with Session(self.engine) as session:
                key_data = session.exec(select(ApiKey).where(ApiKey.key_value == clean_key)).first()
                if key_data is None or key_data.status != "active":
                    return DENIED

                subscriptions = session.exec(
                    select(Subscription).where(and_(Subscription.user_id == key_data.user_id, Subscription.status == "active"))
                ).all()
        except (SQLAlchemyError, ValueError):
            logger.exception("key lookup failed")
            self.metrics.incr("errors.check_access")
            return DENIED

        if not subscriptions:
            logger.info("key %s has no active subscription", key_data.id)
            return AccessResult(False, key_data, FREE_PLAN)

        subscription = max(subscriptions, key=subscription_rank)
        return AccessResult(True, key_data, subscription.plan or FREE_PLAN)

    @staticmethod
    def generate_session_id() -> str:
        return f"sess_{str(uuid.uuid4())[:13]}"

    def fetch_history(self, session_id: str) -> Optional[List[ChatTurn]]:
        """
        Like get_history, but returns None when the transcript could not be
        read so callers can tell a failed read from a new session.
        """
        try:
            with Session(self.engine) as session:
                memory = session.get(ChatMemory, session_id)
                raw = memory.history_json if memory is not None else []
        except (SQLAlchemyError, ValueError):
            logger.exception("could not load history for session %s", session_id)
            self.metrics.incr("errors.get_history")
            return None
        return parse_history(raw)

    def get_history(self, session_id: str) -> List[ChatTurn]:
        history = self.fetch_history(session_id)
        return history if history is not None else []

    def upsert_history(self, api_key_id: str, session_id: str, history: List[ChatTurn]):
        try:
            with Session(self.engine) as session:
                memory = session.get(ChatMemory, session_id)
                if memory is None:
                    memory = ChatMemory(session_id=session_id, api_key_id=api_key_id)
                memory.api_key_id = api_key_id
                memory.history_json = [{"role": turn.role, "content": turn.content} for turn in history]
                memory.updated_at = utcnow()

                session.add(memory)
                session.commit()
        except (SQLAlchemyError, ValueError, TypeError):
            logger.exception("could not save history for session %s", session_id)
            self.metrics.incr("errors.upsert_history")

    def insert_log(self, api_key_id: str, event_type: str, event_data: Any):
        try:
            with Session(self.engine) as session:
                session.add(ApiKeyLog(api_key_id=api_key_id, event_type=event_type, event_data=event_data))
                session.commit()
        except (SQLAlchemyError, ValueError, TypeError):
            logger.exception("could not write %s log for key %s", event_type, api_key_id)
            self.metrics.incr("errors.insert_log")
