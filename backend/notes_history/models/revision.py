from datetime import datetime

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notes_history.database import Base
from notes_history.models.note import new_id


class Revision(Base):
    """One patch-encoded delta of a document against its parent revision.

    A revision without ``parent_id`` is a full snapshot relative to an empty
    document. Rows are never edited after insertion, except by retention
    compaction (see ``services.revision_retention``).
    """

    __tablename__ = "revisions"
    __table_args__ = (
        Index("ix_revisions_item", "item_type", "item_id", "item_updated_time"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    parent_id: Mapped[str | None] = mapped_column(String(32), nullable=True, default=None)
    # No FK to notes: the history outlives the note it belongs to
    item_type: Mapped[str] = mapped_column(String(32), nullable=False)
    item_id: Mapped[str] = mapped_column(String(32), nullable=False)
    item_updated_time: Mapped[datetime] = mapped_column(nullable=False, index=True)
    title_diff: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_diff: Mapped[str] = mapped_column(Text, nullable=False, default="")
    metadata_diff: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Revision(id={self.id}, item={self.item_type}:{self.item_id}, parent={self.parent_id})>"


class RevisionCheckpoint(Base):
    __tablename__ = "revision_checkpoints"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[datetime] = mapped_column(nullable=False)
