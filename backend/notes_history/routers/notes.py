from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from notes_history.database import get_db
from notes_history.models import Note
from notes_history.schemas.note import NoteCreate, NoteResponse, NoteUpdate
from notes_history.services import notes

router = APIRouter(prefix="/notes", tags=["notes"])


def note_response(note: Note) -> NoteResponse:
    return NoteResponse(
        id=note.id,
        title=note.title,
        body=note.body,
        metadata=note.metadata_ or {},
        created_at=note.created_at,
        updated_at=note.updated_at,
    )


async def _get_note_or_404(db: AsyncSession, note_id: str) -> Note:
    note = await notes.get_note(db, note_id)
    if note is None:
        raise HTTPException(status_code=404, detail="Note not found")
    return note


@router.post("", response_model=NoteResponse, status_code=201)
async def create_note(body: NoteCreate, db: AsyncSession = Depends(get_db)) -> NoteResponse:
    note = await notes.create_note(db, body.title, body.body, body.metadata)
    await db.commit()
    return note_response(note)


@router.get("/{note_id}", response_model=NoteResponse)
async def get_note(note_id: str, db: AsyncSession = Depends(get_db)) -> NoteResponse:
    note = await _get_note_or_404(db, note_id)
    return note_response(note)


@router.patch("/{note_id}", response_model=NoteResponse)
async def update_note(note_id: str, body: NoteUpdate, db: AsyncSession = Depends(get_db)) -> NoteResponse:
    note = await _get_note_or_404(db, note_id)
    note = await notes.update_note(db, note, title=body.title, body=body.body, metadata=body.metadata)
    await db.commit()
    return note_response(note)


@router.delete("/{note_id}", status_code=204)
async def delete_note(note_id: str, db: AsyncSession = Depends(get_db)) -> None:
    note = await _get_note_or_404(db, note_id)
    await notes.delete_note(db, note)
    await db.commit()
