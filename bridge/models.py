from sqlmodel import SQLModel, Field, Column, JSON
from typing import Any, List, Optional
import datetime

def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)

class ApiKey(SQLModel, table=True):
    __tablename__ = "api_keys"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    key_value: str = Field(index=True, unique=True)
    status: str = Field(default="active") # active | revoked | ...
    context: str = Field(default="")
    manual_faqs: List[Any] = Field(default_factory=list, sa_column=Column(JSON))

class Subscription(SQLModel, table=True):
    __tablename__ = "subscriptions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    plan: str = Field(default="Free")
    status: str = Field(default="active")
    ends_at: Optional[datetime.datetime] = Field(default=None)

class ChatMemory(SQLModel, table=True):
    __tablename__ = "chat_memory"

    session_id: str = Field(primary_key=True)
    api_key_id: str = Field(index=True)
    history_json: List[Any] = Field(default_factory=list, sa_column=Column(JSON))
    updated_at: datetime.datetime = Field(default_factory=utcnow)

class ApiKeyLog(SQLModel, table=True):
    __tablename__ = "api_key_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_key_id: str = Field(index=True)
    event_type: str
    event_data: Any = Field(default=None, sa_column=Column(JSON))
    created_at: datetime.datetime = Field(default_factory=utcnow)

class ChatTurn(SQLModel):
    role: str # user | assistant
    content: str

class ChatRequest(SQLModel):
    message: str = ""
    session_id: Optional[str] = None
