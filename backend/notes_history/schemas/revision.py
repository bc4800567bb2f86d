from datetime import datetime
from typing import Any

from pydantic import BaseModel


class RevisionResponse(BaseModel):
    id: str
    parent_id: str | None
    item_type: str
    item_id: str
    item_updated_time: datetime

    model_config = {"from_attributes": True}


class RevisionContentResponse(BaseModel):
    revision_id: str
    title: str
    body: str
    metadata: dict[str, Any]


class CollectResponse(BaseModel):
    created: int


class CleanupResponse(BaseModel):
    deleted: int
