"""Rebuild a document from its revision chain.

The revisions of one item are loaded as a flat list ordered by
``item_updated_time``. Parent links are resolved through an id -> position
index over that list, so reconstructing a revision only ever folds in its
real ancestors, even when the history branched (two devices editing the
same base revision offline).
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from notes_history.models import Revision
from notes_history.services import revisions as revisions_store
from notes_history.services.errors import RevisionNotFoundError
from notes_history.services.patches import apply_object_patch, apply_text_patch

logger = logging.getLogger(__name__)


@dataclass
class NoteState:
    title: str = ""
    body: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


def move_revision_to_top(revision: Revision, revisions: Sequence[Revision]) -> list[Revision]:
    """Return a copy of ``revisions`` with ``revision`` moved to the end.

    Two revisions can share the same ``item_updated_time`` (even a revision
    and its parent), so the time order alone does not guarantee the target
    comes last among its ties.
    """
    target_index = -1
    for i in range(len(revisions) - 1, -1, -1):
        if revisions[i].id == revision.id:
            target_index = i
            break

    if target_index < 0:
        raise RevisionNotFoundError(revision.id)

    output = list(revisions)
    if target_index != len(output) - 1:
        output.append(output.pop(target_index))
    return output


def ancestor_chain(revision: Revision, revisions: Sequence[Revision]) -> list[Revision]:
    """Ancestors of ``revision`` (itself included), oldest first.

    ``revisions`` must be ordered oldest first. A parent is only looked up
    among the revisions that precede its child in that order. A parent that
    cannot be found ends the walk: the revision is then treated as the
    oldest available ancestor, which keeps partially synced histories
    readable.
    """
    revs = move_revision_to_top(revision, revisions)
    positions = {rev.id: i for i, rev in enumerate(revs)}

    chain = [revs[-1]]
    current_index = len(revs) - 1
    parent_id = revision.parent_id
    while parent_id:
        parent_index = positions.get(parent_id)
        if parent_index is None or parent_index >= current_index:
            logger.warning(
                "Revision parent not found, treating as root",
                extra={"revision_id": revs[current_index].id, "parent_id": parent_id},
            )
            break
        chain.append(revs[parent_index])
        current_index = parent_index
        parent_id = revs[parent_index].parent_id

    chain.reverse()
    return chain


def merge_diffs(revision: Revision, revisions: Sequence[Revision]) -> NoteState:
    """Fold the patches of ``revision``'s ancestor chain into a document state."""
    output = NoteState()
    for rev in ancestor_chain(revision, revisions):
        output.title = apply_text_patch(output.title, rev.title_diff)
        output.body = apply_text_patch(output.body, rev.body_diff)
        output.metadata = apply_object_patch(output.metadata, rev.metadata_diff)
    return output


def revision_note(revisions: Sequence[Revision], index: int) -> NoteState:
    """State of the note at ``revisions[index]``."""
    return merge_diffs(revisions[index], revisions)


async def load_revision_state(db: AsyncSession, revision: Revision) -> NoteState:
    """Reconstruct ``revision`` using the revisions stored up to its timestamp."""
    revs = await revisions_store.all_revisions_for_item(
        db, revision.item_type, revision.item_id, until=revision.item_updated_time
    )
    return merge_diffs(revision, revs)
