"""Create revisions from note changes.

Policy:
- Creating a note never creates a revision.
- The first time a note without any revision is overwritten, its previous
  content is saved as a revision. This protects notes that existed before
  revisions were enabled.
- Later changes are picked up by ``collect_revisions``, which runs
  periodically and saves the current state of every note changed since the
  last run, chained onto the note's latest revision.
- Deleting a note that has no revision saves its last content first.
"""

import asyncio
import logging
import weakref
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notes_history.config import settings
from notes_history.models import ItemType, Note, Revision, RevisionCheckpoint
from notes_history.services import notes
from notes_history.services import revisions as revisions_store
from notes_history.services.errors import RevisionNotFoundError
from notes_history.services.notes import NoteSnapshot
from notes_history.services.patches import create_object_patch, create_text_patch
from notes_history.services.revision_merge import NoteState, load_revision_state

logger = logging.getLogger(__name__)

_item_locks: "weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()


def item_lock(item_type: str, item_id: str) -> asyncio.Lock:
    """Lock serializing writes to one item's revision chain within this process."""
    key = (item_type, item_id)
    lock = _item_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _item_locks[key] = lock
    return lock


async def _create_note_revision(
    db: AsyncSession, note: NoteSnapshot, parent_id: str | None = None
) -> Revision:
    if parent_id is None:
        parent = await revisions_store.latest_revision_for_item(db, ItemType.NOTE.value, note.id)
    else:
        parent = await revisions_store.get_revision(db, parent_id)
        if parent is None:
            raise RevisionNotFoundError(parent_id)

    parent_state = await load_revision_state(db, parent) if parent is not None else NoteState()
    state = note.state

    revision = await revisions_store.add_revision(
        db,
        item_type=ItemType.NOTE.value,
        item_id=note.id,
        item_updated_time=note.updated_at,
        parent_id=parent.id if parent is not None else None,
        title_diff=create_text_patch(parent_state.title, state.title),
        body_diff=create_text_patch(parent_state.body, state.body),
        metadata_diff=create_object_patch(parent_state.metadata, state.metadata),
    )
    logger.info(
        "Created note revision",
        extra={"note_id": note.id, "revision_id": revision.id, "parent_id": revision.parent_id},
    )
    return revision


async def create_note_revision(
    db: AsyncSession, note: Note | NoteSnapshot, parent_id: str | None = None
) -> Revision:
    """Save the current state of ``note`` as a revision.

    The revision is a diff against ``parent_id`` when given, otherwise
    against the latest revision of the note. Passing the parent explicitly
    lets two divergent edits of the same base both point at that base.
    Flushes, does not commit.
    """
    if isinstance(note, Note):
        note = notes.snapshot(note)
    async with item_lock(ItemType.NOTE.value, note.id):
        return await _create_note_revision(db, note, parent_id)


async def _create_if_no_revision(db: AsyncSession, note: NoteSnapshot) -> Revision | None:
    async with item_lock(ItemType.NOTE.value, note.id):
        if await revisions_store.count_revisions(db, ItemType.NOTE.value, note.id):
            return None
        return await _create_note_revision(db, note)


async def on_note_updated(db: AsyncSession, before: NoteSnapshot) -> Revision | None:
    """Called with the previous content of a note about to be overwritten."""
    if not settings.revision_service_enabled:
        return None
    return await _create_if_no_revision(db, before)


async def on_note_deleted(db: AsyncSession, before: NoteSnapshot) -> Revision | None:
    """Called with the last content of a note about to be deleted."""
    if not settings.revision_service_enabled:
        return None
    return await _create_if_no_revision(db, before)


def _checkpoint_name(item_type: ItemType) -> str:
    return f"{item_type.value}.last_collected_at"


async def _get_checkpoint(db: AsyncSession, item_type: ItemType) -> datetime | None:
    result = await db.execute(
        select(RevisionCheckpoint.value).where(RevisionCheckpoint.name == _checkpoint_name(item_type))
    )
    return result.scalar_one_or_none()


async def _set_checkpoint(db: AsyncSession, item_type: ItemType, value: datetime) -> None:
    checkpoint = await db.get(RevisionCheckpoint, _checkpoint_name(item_type))
    if checkpoint is None:
        db.add(RevisionCheckpoint(name=_checkpoint_name(item_type), value=value))
    elif value > checkpoint.value:
        checkpoint.value = value


async def _collect_note(db: AsyncSession, note: NoteSnapshot) -> bool:
    async with item_lock(ItemType.NOTE.value, note.id):
        if await revisions_store.revision_exists(db, ItemType.NOTE.value, note.id, note.updated_at):
            return False
        try:
            await _create_note_revision(db, note)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return True


async def _collect_notes(db: AsyncSession) -> int:
    started = datetime.now(timezone.utc).replace(tzinfo=None)
    since = await _get_checkpoint(db, ItemType.NOTE)
    newest = since
    created = 0
    after = None
    while True:
        page = await notes.list_notes_updated_since(
            db, since, limit=settings.revision_collect_batch_size, after=after
        )
        if not page:
            break
        snapshots = [notes.snapshot(n) for n in page]
        after = (snapshots[-1].updated_at, snapshots[-1].id)
        for note in snapshots:
            newest = note.updated_at if newest is None else max(newest, note.updated_at)
            # Never modified since creation: the note itself holds that content
            if note.updated_at == note.created_at:
                continue
            if await _collect_note(db, note):
                created += 1

    if newest is not None:
        # Never past the run start minus the margin: a note stamped before
        # that but committed after this run must still be listed next time.
        horizon = started - timedelta(seconds=settings.revision_collect_margin_seconds)
        await _set_checkpoint(db, ItemType.NOTE, min(newest, horizon))
        await db.commit()
    return created


_COLLECTORS = {
    ItemType.NOTE: _collect_notes,
}


async def collect_revisions(db: AsyncSession) -> int:
    """Save a revision for every document changed since the last collection.

    Safe to run repeatedly: a document version that already has a revision
    is skipped. Returns the number of revisions created.
    """
    if not settings.revision_service_enabled:
        return 0
    created = 0
    for item_type in ItemType:
        created += await _COLLECTORS[item_type](db)
    if created:
        logger.info("Collected revisions", extra={"count": created})
    return created


async def restore_note_revision(db: AsyncSession, note_id: str, revision_id: str) -> Note:
    """Write the content of a revision back to its note.

    Goes through the normal update path, so the overwritten content is
    itself covered by the revision policy. A deleted note is restored as a
    new note. Does not commit.
    """
    revision = await revisions_store.get_revision(db, revision_id)
    if revision is None or revision.item_type != ItemType.NOTE.value or revision.item_id != note_id:
        raise RevisionNotFoundError(revision_id)

    state = await load_revision_state(db, revision)
    note = await notes.get_note(db, note_id)
    if note is None:
        note = await notes.create_note(db, state.title, state.body, state.metadata)
        logger.info("Restored deleted note", extra={"note_id": note_id, "new_note_id": note.id})
        return note
    return await notes.update_note(db, note, title=state.title, body=state.body, metadata=state.metadata)
