from notes_history.models.note import ItemType, Note
from notes_history.models.revision import Revision, RevisionCheckpoint

__all__ = ["ItemType", "Note", "Revision", "RevisionCheckpoint"]
