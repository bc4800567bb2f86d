"""Retention of revision history.

Revisions older than the TTL are deleted. Surviving revisions that were
diffs against a deleted revision are rewritten into self-contained
snapshots first (``CompactedRootRevision``), so everything newer than the
cutoff stays reconstructable.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from notes_history.models import Revision
from notes_history.services import revisions as revisions_store
from notes_history.services.patches import create_object_patch, create_text_patch
from notes_history.services.revision_merge import NoteState, merge_diffs
from notes_history.services.revision_service import item_lock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompactedRootRevision:
    """A revision rewritten as a snapshot relative to an empty document.

    This is the only transition allowed to modify an existing revision row.
    The result never has a parent.
    """

    revision_id: str
    title_diff: str
    body_diff: str
    metadata_diff: str

    @classmethod
    def from_state(cls, revision_id: str, state: NoteState) -> "CompactedRootRevision":
        return cls(
            revision_id=revision_id,
            title_diff=create_text_patch("", state.title),
            body_diff=create_text_patch("", state.body),
            metadata_diff=create_object_patch({}, state.metadata),
        )

    def update_statement(self, now: datetime):
        return (
            update(Revision)
            .where(Revision.id == self.revision_id)
            .values(
                parent_id=None,
                title_diff=self.title_diff,
                body_diff=self.body_diff,
                metadata_diff=self.metadata_diff,
                updated_at=now,
            )
        )


async def _compact_item(db: AsyncSession, item_type: str, item_id: str, cutoff: datetime, now: datetime) -> int:
    revs = await revisions_store.all_revisions_for_item(db, item_type, item_id)
    expired_ids = {r.id for r in revs if r.item_updated_time < cutoff}
    survivors = [r for r in revs if r.item_updated_time >= cutoff]

    compacted: list[CompactedRootRevision] = []
    if survivors:
        # The oldest survivor becomes the new root, along with any other
        # survivor whose parent is about to disappear (conflict branches).
        to_rewrite = [survivors[0]] + [
            r for r in survivors[1:] if r.parent_id is not None and r.parent_id in expired_ids
        ]
        compacted = [CompactedRootRevision.from_state(r.id, merge_diffs(r, revs)) for r in to_rewrite]

    try:
        await db.execute(
            delete(Revision).where(
                Revision.item_type == item_type,
                Revision.item_id == item_id,
                Revision.item_updated_time < cutoff,
            )
        )
        for c in compacted:
            await db.execute(c.update_statement(now))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Compacted revision history",
        extra={
            "item_type": item_type,
            "item_id": item_id,
            "deleted": len(expired_ids),
            "rewritten": [c.revision_id for c in compacted],
        },
    )
    return len(expired_ids)


async def delete_old_revisions(db: AsyncSession, ttl_ms: int, now: datetime | None = None) -> int:
    """Delete revisions older than ``ttl_ms``. Returns the number deleted.

    Each item is handled in its own transaction.
    """
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    cutoff = now - timedelta(milliseconds=ttl_ms)

    result = await db.execute(
        select(Revision.item_type, Revision.item_id)
        .where(Revision.item_updated_time < cutoff)
        .order_by(Revision.item_updated_time.desc())
    )
    # dict.fromkeys: each item once, newest first
    items = list(dict.fromkeys((row.item_type, row.item_id) for row in result))

    deleted = 0
    for item_type, item_id in items:
        async with item_lock(item_type, item_id):
            deleted += await _compact_item(db, item_type, item_id, cutoff, now)
    return deleted
