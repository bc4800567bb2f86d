"""Queries over the revisions table."""

from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from notes_history.models import Revision

_ORDER = (Revision.item_updated_time.asc(), Revision.created_at.asc(), Revision.id.asc())


async def all_revisions_for_item(
    db: AsyncSession, item_type: str, item_id: str, until: datetime | None = None
) -> list[Revision]:
    """All revisions of one item, oldest first."""
    q = select(Revision).where(Revision.item_type == item_type, Revision.item_id == item_id)
    if until is not None:
        q = q.where(Revision.item_updated_time <= until)
    result = await db.execute(q.order_by(*_ORDER))
    return list(result.scalars().all())


async def latest_revision_for_item(db: AsyncSession, item_type: str, item_id: str) -> Revision | None:
    result = await db.execute(
        select(Revision)
        .where(Revision.item_type == item_type, Revision.item_id == item_id)
        .order_by(
            Revision.item_updated_time.desc(), Revision.created_at.desc(), Revision.id.desc()
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_revision(db: AsyncSession, revision_id: str) -> Revision | None:
    result = await db.execute(select(Revision).where(Revision.id == revision_id))
    return result.scalar_one_or_none()


async def revision_exists(
    db: AsyncSession, item_type: str, item_id: str, item_updated_time: datetime
) -> bool:
    result = await db.execute(
        select(Revision.id)
        .where(
            Revision.item_type == item_type,
            Revision.item_id == item_id,
            Revision.item_updated_time == item_updated_time,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def count_revisions(db: AsyncSession, item_type: str, item_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Revision)
        .where(Revision.item_type == item_type, Revision.item_id == item_id)
    )
    return result.scalar_one()


async def items_with_revisions(db: AsyncSession, item_type: str, item_ids: Sequence[str]) -> list[str]:
    if not item_ids:
        return []
    result = await db.execute(
        select(Revision.item_id)
        .distinct()
        .where(Revision.item_type == item_type, Revision.item_id.in_(item_ids))
    )
    return list(result.scalars().all())


async def items_with_no_revisions(db: AsyncSession, item_type: str, item_ids: Sequence[str]) -> list[str]:
    with_revisions = set(await items_with_revisions(db, item_type, item_ids))
    # dict.fromkeys: dedupe, keep order
    return [item_id for item_id in dict.fromkeys(item_ids) if item_id not in with_revisions]


async def add_revision(
    db: AsyncSession,
    *,
    item_type: str,
    item_id: str,
    item_updated_time: datetime,
    parent_id: str | None,
    title_diff: str,
    body_diff: str,
    metadata_diff: str,
) -> Revision:
    """Insert a revision row. Flushes, does not commit."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    revision = Revision(
        item_type=item_type,
        item_id=item_id,
        item_updated_time=item_updated_time,
        parent_id=parent_id,
        title_diff=title_diff,
        body_diff=body_diff,
        metadata_diff=metadata_diff,
        created_at=now,
        updated_at=now,
    )
    db.add(revision)
    await db.flush()
    return revision
