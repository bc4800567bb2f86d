"""Tests for revision collection and the note change hooks."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import at
from notes_history.config import settings
from notes_history.models import ItemType, RevisionCheckpoint
from notes_history.services import notes
from notes_history.services import revisions as revisions_store
from notes_history.services import revision_service
from notes_history.services.errors import RevisionNotFoundError
from notes_history.services.revision_merge import revision_note

NOTE = ItemType.NOTE.value


async def _revisions(db: AsyncSession, note_id: str):
    return await revisions_store.all_revisions_for_item(db, NOTE, note_id)


class TestCollectRevisions:
    """Periodic collection of changed notes."""

    async def test_create_diff_and_rebuild_notes(self, db: AsyncSession) -> None:
        """Verify two saves produce a parented pair that rebuilds both versions."""
        note = await notes.create_note(db, "hello", metadata={"author": "testing"}, now=at(0))
        await revision_service.collect_revisions(db)
        await notes.update_note(db, note, title="hello welcome", metadata={"author": ""}, now=at(1))
        await revision_service.collect_revisions(db)

        revs = await _revisions(db, note.id)
        assert len(revs) == 2
        assert revs[0].parent_id is None
        assert revs[1].parent_id == revs[0].id

        first = revision_note(revs, 0)
        assert first.title == "hello"
        assert first.metadata == {"author": "testing"}
        second = revision_note(revs, 1)
        assert second.title == "hello welcome"
        assert second.metadata == {"author": ""}

    async def test_each_edit_then_collect_chains_on_previous(self, db: AsyncSession) -> None:
        """Verify N saves each followed by collection give N chained revisions."""
        note = await notes.create_note(db, "v0", body="body 0", now=at(0))
        await revision_service.collect_revisions(db)
        expected = [("v0", "body 0")]
        for i in range(1, 5):
            await notes.update_note(db, note, title=f"v{i}", body=f"body 0\nline {i}", now=at(i))
            await revision_service.collect_revisions(db)
            expected.append((f"v{i}", f"body 0\nline {i}"))

        revs = await _revisions(db, note.id)
        assert len(revs) == len(expected)
        for previous, current in zip(revs, revs[1:]):
            assert current.parent_id == previous.id
        for i, (title, body) in enumerate(expected):
            state = revision_note(revs, i)
            assert (state.title, state.body) == (title, body)

    async def test_new_note_gets_no_revision(self, db: AsyncSession) -> None:
        """Verify creating a note, even followed by collection, creates nothing."""
        note = await notes.create_note(db, "hello", now=at(0))

        assert await _revisions(db, note.id) == []
        assert await revision_service.collect_revisions(db) == 0
        assert await _revisions(db, note.id) == []

    async def test_collection_is_idempotent(self, db: AsyncSession) -> None:
        """Verify a note version is never captured twice, even after a checkpoint reset."""
        note = await notes.create_note(db, "hello", now=at(0))
        await notes.update_note(db, note, title="hello 2", now=at(1))

        assert await revision_service.collect_revisions(db) == 1
        assert await revision_service.collect_revisions(db) == 0

        await db.execute(delete(RevisionCheckpoint))
        await db.commit()
        assert await revision_service.collect_revisions(db) == 0
        assert len(await _revisions(db, note.id)) == 2

    async def test_collects_across_pages(self, db: AsyncSession, monkeypatch) -> None:
        """Verify every changed note is visited when results span several pages."""
        monkeypatch.setattr(settings, "revision_collect_batch_size", 2)
        created = []
        for i in range(5):
            note = await notes.create_note(db, f"note {i}", now=at(0))
            await notes.update_note(db, note, title=f"note {i} edited", now=at(1))
            created.append(note)

        assert await revision_service.collect_revisions(db) == 5
        for note in created:
            state = revision_note(await _revisions(db, note.id), -1)
            assert state.title == note.title

    async def test_only_notes_changed_since_checkpoint(self, db: AsyncSession) -> None:
        """Verify collection only looks at notes updated after the last run."""
        old = await notes.create_note(db, "old", now=at(0))
        await notes.update_note(db, old, title="old 2", now=at(1))
        await revision_service.collect_revisions(db)

        new = await notes.create_note(db, "new", now=at(5))
        await notes.update_note(db, new, title="new 2", now=at(6))
        assert await revision_service.collect_revisions(db) == 1
        assert len(await _revisions(db, old.id)) == 2
        assert len(await _revisions(db, new.id)) == 2

    async def test_note_stamped_before_checkpoint_is_collected(self, db: AsyncSession) -> None:
        """Verify an update stamped before the last run but saved after it is still picked up."""
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        y = await notes.create_note(db, "y", now=now - timedelta(seconds=2))
        await notes.update_note(db, y, title="y 2", now=now)
        assert await revision_service.collect_revisions(db) == 1

        x = await notes.create_note(db, "x", now=now - timedelta(seconds=20))
        await notes.update_note(db, x, title="x 2", now=now - timedelta(seconds=10))
        await db.commit()

        assert await revision_service.collect_revisions(db) == 1
        assert await revisions_store.revision_exists(db, NOTE, x.id, x.updated_at)
        assert revision_note(await _revisions(db, x.id), -1).title == "x 2"

    async def test_disabled_service_does_nothing(self, db: AsyncSession, monkeypatch) -> None:
        """Verify no hook or collection runs while revisions are disabled."""
        monkeypatch.setattr(settings, "revision_service_enabled", False)
        note = await notes.create_note(db, "hello", now=at(0))
        await notes.update_note(db, note, title="hello 2", now=at(1))

        assert await revision_service.collect_revisions(db) == 0
        note_id = note.id
        await notes.delete_note(db, note)
        assert await _revisions(db, note_id) == []


class TestConflicts:
    """Revisions created against an explicit parent."""

    async def test_handle_conflicts(self, db: AsyncSession) -> None:
        """Verify sibling revisions of one base rebuild independently."""
        note = await notes.create_note(db, "hello", now=at(0))
        rev1 = await revision_service.create_note_revision(db, note)
        await notes.update_note(db, note, title="hello Paul", now=at(1))
        rev2 = await revision_service.create_note_revision(db, note, rev1.id)
        await notes.update_note(db, note, title="hello John", now=at(2))
        rev3 = await revision_service.create_note_revision(db, note, rev1.id)

        revs = await _revisions(db, note.id)
        assert [r.id for r in revs] == [rev1.id, rev2.id, rev3.id]
        assert revs[1].parent_id == rev1.id
        assert revs[2].parent_id == rev1.id
        assert revision_note(revs, 0).title == "hello"
        assert revision_note(revs, 1).title == "hello Paul"
        assert revision_note(revs, 2).title == "hello John"

    async def test_unknown_explicit_parent_raises(self, db: AsyncSession) -> None:
        """Verify a parent id that does not exist is rejected."""
        note = await notes.create_note(db, "hello", now=at(0))

        with pytest.raises(RevisionNotFoundError):
            await revision_service.create_note_revision(db, note, "missing")


class TestNoteHooks:
    """Revisions created directly by note overwrites and deletions."""

    async def test_first_overwrite_saves_previous_content(self, db: AsyncSession) -> None:
        """Verify only the first overwrite of a note without revisions creates one."""
        note = await notes.create_note(db, "hello", now=at(0))
        assert await _revisions(db, note.id) == []

        await notes.update_note(db, note, title="hello 2", now=at(1))
        revs = await _revisions(db, note.id)
        assert len(revs) == 1
        assert revision_note(revs, 0).title == "hello"
        assert revs[0].item_updated_time == at(0)

        await notes.update_note(db, note, title="hello 3", now=at(2))
        assert len(await _revisions(db, note.id)) == 1

    async def test_unchanged_save_is_not_an_overwrite(self, db: AsyncSession) -> None:
        """Verify saving identical content neither bumps the note nor creates a revision."""
        note = await notes.create_note(db, "hello", body="x", now=at(0))

        await notes.update_note(db, note, title="hello", body="x", now=at(1))

        assert note.updated_at == at(0)
        assert await _revisions(db, note.id) == []

    async def test_delete_without_revisions_saves_last_content(self, db: AsyncSession) -> None:
        """Verify deleting a note with no history keeps one revision of it."""
        note = await notes.create_note(db, "hello", body="keep me", metadata={"k": "v"}, now=at(0))
        note_id = note.id

        await notes.delete_note(db, note)
        await db.commit()

        assert await notes.get_note(db, note_id) is None
        revs = await _revisions(db, note_id)
        assert len(revs) == 1
        state = revision_note(revs, 0)
        assert (state.title, state.body, state.metadata) == ("hello", "keep me", {"k": "v"})

    async def test_metadata_type_change_is_an_overwrite(self, db: AsyncSession) -> None:
        """Verify switching a metadata value from 1 to true counts as a change."""
        note = await notes.create_note(db, "hello", metadata={"pinned": 1}, now=at(0))

        await notes.update_note(db, note, metadata={"pinned": True}, now=at(1))

        assert note.updated_at == at(1)
        revs = await _revisions(db, note.id)
        assert len(revs) == 1
        assert revision_note(revs, 0).metadata == {"pinned": 1}
        await revision_service.collect_revisions(db)
        latest = revision_note(await _revisions(db, note.id), -1).metadata["pinned"]
        assert latest is True

    async def test_delete_with_revisions_adds_nothing(self, db: AsyncSession) -> None:
        """Verify deleting a note that already has history does not add a revision."""
        note = await notes.create_note(db, "hello", now=at(0))
        await notes.update_note(db, note, title="hello 2", now=at(1))
        note_id = note.id

        await notes.delete_note(db, note)

        assert len(await _revisions(db, note_id)) == 1


class TestRestore:
    """Writing a revision back to its note."""

    async def test_restore_overwrites_note(self, db: AsyncSession) -> None:
        """Verify the note takes the revision's content."""
        note = await notes.create_note(db, "hello", body="one", metadata={"a": 1}, now=at(0))
        await notes.update_note(db, note, title="changed", body="two", metadata={}, now=at(1))
        rev = (await _revisions(db, note.id))[0]

        restored = await revision_service.restore_note_revision(db, note.id, rev.id)

        assert restored.id == note.id
        assert (restored.title, restored.body, restored.metadata_) == ("hello", "one", {"a": 1})

    async def test_restore_deleted_note_creates_new_note(self, db: AsyncSession) -> None:
        """Verify a deleted note comes back as a new note."""
        note = await notes.create_note(db, "gone", body="content", now=at(0))
        note_id = note.id
        await notes.delete_note(db, note)
        rev = (await _revisions(db, note_id))[0]

        restored = await revision_service.restore_note_revision(db, note_id, rev.id)

        assert restored.id != note_id
        assert (restored.title, restored.body) == ("gone", "content")

    async def test_restore_revision_of_other_note_raises(self, db: AsyncSession) -> None:
        """Verify a revision cannot be restored onto a different note."""
        a = await notes.create_note(db, "a", now=at(0))
        b = await notes.create_note(db, "b", now=at(0))
        await notes.update_note(db, a, title="a2", now=at(1))
        rev = (await _revisions(db, a.id))[0]

        with pytest.raises(RevisionNotFoundError):
            await revision_service.restore_note_revision(db, b.id, rev.id)


def test_item_lock_is_shared_per_item() -> None:
    """Verify the same lock guards one item and different items get different locks."""
    lock = revision_service.item_lock(NOTE, "n1")
    assert revision_service.item_lock(NOTE, "n1") is lock
    assert revision_service.item_lock(NOTE, "n2") is not lock
