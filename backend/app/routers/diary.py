"""
Router du journal de classe (cache local offline-first).
Lecture du flux depuis le cache, mutations locales du personnel, déclenchement
d'un cycle de synchronisation pull puis push.
"""

import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_local_store, get_sync_coordinator
from app.exceptions import DiaryEntryNotFoundError, SyncError
from app.schemas.diary import DiaryEntryCreate, DiaryEntryResponse, DiaryEntryUpdate, UserProfileResponse
from app.schemas.sync import SyncReport, SyncStatus
from app.services.local_store import LocalStore
from app.services.sync_service import SyncCoordinator

router = APIRouter(prefix="/api/v1/diary", tags=["Journal de classe"])

profile_router = APIRouter(prefix="/api/v1/profile", tags=["Profil"])


@router.post("/sync", response_model=SyncReport, summary="Lancer un cycle de synchronisation")
def sync_diary(coordinator: SyncCoordinator = Depends(get_sync_coordinator)):
    """
    Pull (profil + entrées modifiées depuis le watermark) puis push des modifications locales.

    - 200 : cycle terminé ; les échecs de push individuels sont listés dans `push_failures`
      et les entrées concernées restent en attente pour le cycle suivant.
    - 503 : le pull a échoué, le watermark n'a pas bougé.
    """
    try:
        return coordinator.sync()
    except SyncError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/sync/status", response_model=SyncStatus, summary="État de la synchronisation")
def get_sync_status(store: LocalStore = Depends(get_local_store)):
    changes = store.pending_changes()
    return SyncStatus(
        last_pulled_at=store.get_watermark(),
        schema_version=store.get_schema_version() or 0,
        pending_created=len(changes.created),
        pending_updated=len(changes.updated),
        pending_deleted=len(changes.deleted),
    )


@router.get("", response_model=List[DiaryEntryResponse], summary="Entrées du journal d'une date")
def list_entries(
    entry_date: dt.date,
    class_section_id: Optional[str] = None,
    store: LocalStore = Depends(get_local_store),
):
    """Entrées d'une date (et d'une classe, si fournie), triées par matière. Les suppressions locales sont masquées."""
    return store.query_diary(entry_date, class_section_id)


@router.post("", response_model=DiaryEntryResponse, status_code=201, summary="Créer une entrée hors-ligne")
def create_entry(data: DiaryEntryCreate, store: LocalStore = Depends(get_local_store)):
    return store.create_entry(data)


@router.put("/{entry_id}", response_model=DiaryEntryResponse, summary="Modifier une entrée")
def update_entry(entry_id: str, data: DiaryEntryUpdate, store: LocalStore = Depends(get_local_store)):
    try:
        return store.update_entry(entry_id, data)
    except DiaryEntryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{entry_id}", status_code=204, summary="Supprimer une entrée")
def delete_entry(entry_id: str, store: LocalStore = Depends(get_local_store)):
    """Suppression locale ; poussée au serveur au prochain cycle si l'entrée y existe déjà."""
    try:
        store.delete_entry(entry_id)
    except DiaryEntryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@profile_router.get("", response_model=UserProfileResponse, summary="Profil de l'utilisateur courant")
def get_profile(store: LocalStore = Depends(get_local_store)):
    profile = store.get_profile()
    if profile is None:
        raise HTTPException(status_code=404, detail="Profil introuvable : aucune synchronisation effectuée.")
    return profile
