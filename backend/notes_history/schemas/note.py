from datetime import datetime
from typing import Any

from pydantic import BaseModel


class NoteCreate(BaseModel):
    title: str
    body: str = ""
    metadata: dict[str, Any] = {}


class NoteUpdate(BaseModel):
    title: str | None = None
    body: str | None = None
    metadata: dict[str, Any] | None = None


class NoteResponse(BaseModel):
    id: str
    title: str
    body: str
    metadata: dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime
