"""Note storage. Changes are reported to the revision service."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from notes_history.models import Note
from notes_history.services.patches import same_value
from notes_history.services.revision_merge import NoteState

logger = logging.getLogger(__name__)


@dataclass
class NoteSnapshot:
    """Detached copy of a note as it was at ``updated_at``."""

    id: str
    title: str
    body: str
    updated_at: datetime
    created_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def state(self) -> NoteState:
        return NoteState(title=self.title, body=self.body, metadata=dict(self.metadata))


def snapshot(note: Note) -> NoteSnapshot:
    return NoteSnapshot(
        id=note.id,
        title=note.title,
        body=note.body,
        updated_at=note.updated_at,
        created_at=note.created_at,
        metadata=dict(note.metadata_ or {}),
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_note(db: AsyncSession, note_id: str) -> Note | None:
    result = await db.execute(select(Note).where(Note.id == note_id))
    return result.scalar_one_or_none()


async def create_note(
    db: AsyncSession,
    title: str,
    body: str = "",
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Note:
    now = now or _utcnow()
    note = Note(title=title, body=body, metadata_=dict(metadata or {}), created_at=now, updated_at=now)
    db.add(note)
    await db.flush()
    return note


async def update_note(
    db: AsyncSession,
    note: Note,
    title: str | None = None,
    body: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Note:
    """Overwrite the given fields. Nothing happens if the content is unchanged."""
    from notes_history.services import revision_service

    before = snapshot(note)
    new_title = before.title if title is None else title
    new_body = before.body if body is None else body
    new_metadata = before.metadata if metadata is None else dict(metadata)
    if (new_title, new_body) == (before.title, before.body) and same_value(new_metadata, before.metadata):
        return note

    await revision_service.on_note_updated(db, before)

    note.title = new_title
    note.body = new_body
    note.metadata_ = new_metadata
    note.updated_at = now or _utcnow()
    await db.flush()
    return note


async def delete_note(db: AsyncSession, note: Note) -> None:
    from notes_history.services import revision_service

    before = snapshot(note)
    await revision_service.on_note_deleted(db, before)
    await db.delete(note)
    await db.flush()
    logger.info("Deleted note", extra={"note_id": before.id})


async def list_notes_updated_since(
    db: AsyncSession,
    since: datetime | None,
    limit: int = 100,
    after: tuple[datetime, str] | None = None,
) -> list[Note]:
    """Notes with ``updated_at >= since``, ordered by (updated_at, id).

    ``after`` is the (updated_at, id) of the last note of the previous page.
    """
    q = select(Note)
    if since is not None:
        q = q.where(Note.updated_at >= since)
    if after is not None:
        after_time, after_id = after
        q = q.where(
            or_(
                Note.updated_at > after_time,
                and_(Note.updated_at == after_time, Note.id > after_id),
            )
        )
    result = await db.execute(q.order_by(Note.updated_at.asc(), Note.id.asc()).limit(limit))
    return list(result.scalars().all())
