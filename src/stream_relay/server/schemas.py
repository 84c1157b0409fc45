"""Pydantic response schemas for the chat stream API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Conversation schemas ─────────────────────────────────────────────────────

class ConversationStatusOut(_CamelModel):
    """GET /api/chat/status/{conversation_id}."""
    exists: bool
    status: Optional[str] = None
    last_sequence: Optional[int] = None
    observer_count: Optional[int] = None
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None


class EndConversationOut(_CamelModel):
    """POST /api/chat/end/{conversation_id}."""
    success: bool
    message: str


# ── Infra schemas ────────────────────────────────────────────────────────────

class HealthOut(_CamelModel):
    """GET /health."""
    status: str = "ok"
    active_sessions: int
    timestamp: datetime
