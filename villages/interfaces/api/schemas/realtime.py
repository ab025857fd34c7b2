"""Schemas for presence queries."""

from pydantic import BaseModel


class PresenceRead(BaseModel):
    """Users currently live on a conversation topic."""

    conversation_id: str
    online_user_ids: list[str]
    count: int


class HealthRead(BaseModel):
    status: str
    database: bool
    realtime: dict[str, object]


__all__ = ["HealthRead", "PresenceRead"]
