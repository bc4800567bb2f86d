from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from notes_history.config import settings
from notes_history.database import get_db
from notes_history.middleware.rate_limit import maintenance_limiter
from notes_history.models import ItemType
from notes_history.routers.notes import note_response
from notes_history.schemas.note import NoteResponse
from notes_history.schemas.revision import (
    CleanupResponse,
    CollectResponse,
    RevisionContentResponse,
    RevisionResponse,
)
from notes_history.services import revisions as revisions_store
from notes_history.services.errors import RevisionNotFoundError
from notes_history.services.revision_merge import merge_diffs
from notes_history.services.revision_retention import delete_old_revisions
from notes_history.services.revision_service import collect_revisions, restore_note_revision

router = APIRouter(tags=["revisions"])


@router.get("/notes/{note_id}/revisions", response_model=list[RevisionResponse])
async def list_note_revisions(note_id: str, db: AsyncSession = Depends(get_db)) -> list[RevisionResponse]:
    """Revisions of a note, oldest first. Still available after the note is deleted."""
    revs = await revisions_store.all_revisions_for_item(db, ItemType.NOTE.value, note_id)
    return [RevisionResponse.model_validate(r) for r in revs]


@router.get("/notes/{note_id}/revisions/{revision_id}", response_model=RevisionContentResponse)
async def get_note_revision(
    note_id: str, revision_id: str, db: AsyncSession = Depends(get_db)
) -> RevisionContentResponse:
    revs = await revisions_store.all_revisions_for_item(db, ItemType.NOTE.value, note_id)
    revision = next((r for r in revs if r.id == revision_id), None)
    if revision is None:
        raise HTTPException(status_code=404, detail="Revision not found")
    state = merge_diffs(revision, revs)
    return RevisionContentResponse(
        revision_id=revision.id, title=state.title, body=state.body, metadata=state.metadata
    )


@router.post("/notes/{note_id}/revisions/{revision_id}/restore", response_model=NoteResponse)
async def restore_revision(note_id: str, revision_id: str, db: AsyncSession = Depends(get_db)) -> NoteResponse:
    try:
        note = await restore_note_revision(db, note_id, revision_id)
    except RevisionNotFoundError:
        raise HTTPException(status_code=404, detail="Revision not found")
    await db.commit()
    return note_response(note)


@router.post("/revisions/collect", response_model=CollectResponse)
@maintenance_limiter
async def collect(request: Request, db: AsyncSession = Depends(get_db)) -> CollectResponse:
    created = await collect_revisions(db)
    return CollectResponse(created=created)


@router.post("/revisions/cleanup", response_model=CleanupResponse)
@maintenance_limiter
async def cleanup(
    request: Request,
    ttl_days: int | None = Query(default=None, ge=0),
    db: AsyncSession = Depends(get_db),
) -> CleanupResponse:
    days = settings.revision_ttl_days if ttl_days is None else ttl_days
    deleted = await delete_old_revisions(db, days * 24 * 60 * 60 * 1000)
    return CleanupResponse(deleted=deleted)
