class RevisionError(Exception):
    """Base class for revision history failures."""


class UnapplyablePatchError(RevisionError):
    """A stored patch does not apply to the state it was computed against.

    This means the revision chain is corrupted; it is never retried.
    """


class RevisionNotFoundError(RevisionError):
    """A revision was looked up in a list that does not contain it."""

    def __init__(self, revision_id: str) -> None:
        self.revision_id = revision_id
        super().__init__(f"Could not find revision: {revision_id}")
