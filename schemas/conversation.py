"""Conversation transcript schemas."""
from datetime import datetime
from typing import Any, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]
Sentiment = Literal["positive", "neutral", "negative"]


class ConversationMessage(BaseModel):
    role: Role
    content: str
    timestamp: datetime


class SessionMetadata(BaseModel):
    """Aggregate view of one session in a histories table."""

    message_count: int
    first_message_at: datetime
    last_message_at: datetime
    first_message: Optional[Any] = None
    last_message: Optional[Any] = None

    @property
    def duration(self) -> int:
        return int((self.last_message_at - self.first_message_at).total_seconds())


class ConversationMetadata(BaseModel):
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    sentiment: Optional[Sentiment] = None
    resolved: bool = False
    duration: Optional[int] = None


class ConversationDetail(BaseModel):
    id: UUID
    session_id: str
    client_id: str
    crew_id: UUID
    metadata: ConversationMetadata
    transcript: List[ConversationMessage] = Field(default_factory=list)
    created_at: datetime
