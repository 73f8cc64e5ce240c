"""Archive endpoints: past session summaries and known characters."""

from fastapi import APIRouter, Depends

from aethelgard.archives import NarrativeStore
from aethelgard.models import ArchiveEntry

from .deps import Services, require_user, services

router = APIRouter()


def _store(svc: Services = Depends(services)) -> NarrativeStore:
    return svc.store


@router.get("/archives/{character_name}", dependencies=[Depends(require_user)])
async def character_archives(character_name: str, store: NarrativeStore = Depends(_store)) -> list[ArchiveEntry]:
    """All archived summaries for one character, newest first."""
    return store.fetch_all_summaries(character_name)


@router.get("/archives")
async def archive_digest(store: NarrativeStore = Depends(_store)) -> dict:
    """The world chronicle used as narrator context."""
    return {"digest": store.fetch_archive_digest()}


@router.get("/characters")
async def known_characters(store: NarrativeStore = Depends(_store)) -> list[str]:
    """Names of every character with at least one archived session."""
    return store.fetch_known_character_names()
