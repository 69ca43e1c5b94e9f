"""
Cache local embarqué du journal de classe (LocalStore).

Stratégie : cache offline-first versionné
- Le pull applique un lot complet en UNE transaction : un lecteur ne voit jamais
  un flux à moitié fusionné.
- Upsert par id, last-write-wins sur updated_at : un lot rejoué donne le même état
  (idempotence). À updated_at égal, le serveur gagne et efface le drapeau local.
- Les modifications locales (personnel) sont marquées created / updated / deleted
  jusqu'à leur push.
- Chaque mutation publie les clés (entry_date, class_section_id) touchées sur le bus :
  les abonnements de requête (écrans) ne sont notifiés que si leur filtre est concerné.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from app.database import Base
from app.events import DIARY_CHANGED, PROFILE_CHANGED, EventBus
from app.exceptions import CacheResetError, DiaryEntryNotFoundError
from app.models.diary_entry import CREATED, DELETED, SYNCED, UPDATED, DiaryEntry
from app.models.sync_state import SYNC_STATE_ID, SyncState
from app.models.user import UserProfile
from app.schemas.diary import DiaryEntryCreate, DiaryEntryResponse, DiaryEntryUpdate, UserProfileResponse
from app.schemas.sync import RemoteDiaryRecord, RemoteUserProfile, to_calendar_date

logger = logging.getLogger(__name__)

FeedKey = Tuple[str, str]  # (entry_date, class_section_id)

CACHE_TABLES = [DiaryEntry.__table__, UserProfile.__table__, SyncState.__table__]


def _now_ms() -> int:
    return int(time.time() * 1000)


def init_local_db(engine, schema_version: int) -> None:
    """
    Crée le schéma local et vérifie sa version.
    Version différente de celle attendue → tables du cache recréées et watermark
    remis à 0 : le prochain cycle refait un pull complet.
    """
    Base.metadata.create_all(bind=engine, tables=CACHE_TABLES)

    with Session(engine) as db:
        state = db.get(SyncState, SYNC_STATE_ID)
        stored_version = state.schema_version if state else None

    if stored_version == schema_version:
        return

    if stored_version is not None:
        logger.warning(
            "Schéma local v%s différent de la v%s attendue : cache réinitialisé.",
            stored_version, schema_version,
        )
        Base.metadata.drop_all(bind=engine, tables=CACHE_TABLES)
        Base.metadata.create_all(bind=engine, tables=CACHE_TABLES)

    with Session(engine) as db:
        db.add(SyncState(id=SYNC_STATE_ID, last_pulled_at=0, schema_version=schema_version))
        db.commit()
    logger.info("Schéma local initialisé (v%s).", schema_version)


@dataclass
class PendingChanges:
    """Modifications locales en attente de push, classées par opération."""
    created: List[DiaryEntryResponse] = field(default_factory=list)
    updated: List[DiaryEntryResponse] = field(default_factory=list)
    deleted: List[DiaryEntryResponse] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)


class DiaryQuerySubscription:
    """
    Abonnement à "toutes les entrées du {entry_date} (et de la classe, si fournie)".
    Le callback reçoit la liste fraîche des entrées à la souscription puis après
    chaque mutation du cache qui touche ce filtre.
    """

    def __init__(
        self,
        store: "LocalStore",
        entry_date: str,
        class_section_id: Optional[str],
        callback: Callable[[List[DiaryEntryResponse]], None],
    ) -> None:
        self._store = store
        self.entry_date = entry_date
        self.class_section_id = class_section_id
        self._callback = callback
        self.active = True

    def matches(self, keys: Optional[FrozenSet[FeedKey]]) -> bool:
        if keys is None:  # réinitialisation complète du cache
            return True
        return any(
            entry_date == self.entry_date
            and (self.class_section_id is None or class_section_id == self.class_section_id)
            for entry_date, class_section_id in keys
        )

    def refresh(self) -> None:
        self._callback(self._store.query_diary(self.entry_date, self.class_section_id))

    def notify(self, event: dict) -> None:
        if self.active and self.matches(event.get("keys")):
            self.refresh()

    def unsubscribe(self) -> None:
        if self.active:
            self._store.event_bus.unsubscribe(DIARY_CHANGED, self.notify)
            self.active = False


class LocalStore:

    def __init__(
        self,
        session_factory: sessionmaker,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._session_factory = session_factory
        self.event_bus = event_bus or EventBus()
        self._clock = clock
        # Une seule écriture à la fois (routers + scheduler partagent le cache)
        self._write_lock = threading.RLock()
        # Incrémenté à chaque reset : un cycle de sync démarré avant est périmé
        self._generation = 0

    # ------------------------------------------------------------------
    # Watermark
    # ------------------------------------------------------------------

    def get_watermark(self) -> int:
        with self._session_factory() as db:
            state = db.get(SyncState, SYNC_STATE_ID)
            return state.last_pulled_at if state else 0

    def get_schema_version(self) -> Optional[int]:
        with self._session_factory() as db:
            state = db.get(SyncState, SYNC_STATE_ID)
            return state.schema_version if state else None

    @property
    def generation(self) -> int:
        return self._generation

    def _check_generation(self, generation: Optional[int]) -> None:
        if generation is not None and generation != self._generation:
            raise CacheResetError("Cache local réinitialisé pendant la synchronisation : lot abandonné.")

    def advance_watermark(self, timestamp: int, generation: Optional[int] = None) -> int:
        """
        Avance le watermark (jamais de recul) et retourne la valeur retenue.
        Lève CacheResetError si le cache a été réinitialisé depuis `generation`.
        """
        with self._write_lock, self._session_factory() as db:
            self._check_generation(generation)
            state = db.get(SyncState, SYNC_STATE_ID)
            if state is None:
                raise RuntimeError("Cache local non initialisé (init_local_db).")
            if timestamp > state.last_pulled_at:
                state.last_pulled_at = timestamp
                db.commit()
            return state.last_pulled_at

    # ------------------------------------------------------------------
    # Pull : application atomique d'un lot serveur
    # ------------------------------------------------------------------

    def apply_pull(
        self,
        records: List[RemoteDiaryRecord],
        profile: Optional[RemoteUserProfile] = None,
        generation: Optional[int] = None,
    ) -> int:
        """
        Applique un lot pull (upserts + profil) en une seule transaction.
        Retourne le nombre d'entrées écrites ; un enregistrement plus ancien que la
        version locale est ignoré. Toute erreur annule l'intégralité du lot.
        Lève CacheResetError si le cache a été réinitialisé depuis `generation`.
        """
        affected = set()
        written = 0

        with self._write_lock:
            self._check_generation(generation)
            db = self._session_factory()
            try:
                # Entrées déjà traitées dans CE lot (autoflush=False → pas visibles via get)
                seen_in_batch = {}

                for record in records:
                    entry = seen_in_batch.get(record.id) or db.get(DiaryEntry, record.id)

                    if entry is not None and entry.updated_at > record.updated_at:
                        logger.debug("Version locale plus récente conservée : %s", record.id)
                        continue

                    if entry is None:
                        entry = DiaryEntry(id=record.id)
                        db.add(entry)
                    else:
                        affected.add((entry.entry_date, entry.class_section_id))

                    for name, value in record.model_dump(exclude={"id"}).items():
                        setattr(entry, name, value)
                    entry.sync_status = SYNCED

                    seen_in_batch[record.id] = entry
                    affected.add((entry.entry_date, entry.class_section_id))
                    written += 1

                if profile is not None:
                    db.execute(delete(UserProfile))
                    db.add(UserProfile(**profile.model_dump()))

                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        logger.info("Pull appliqué : %d reçues, %d écrites", len(records), written)

        if affected:
            self.event_bus.publish(DIARY_CHANGED, {"keys": frozenset(affected)})
        if profile is not None:
            self.event_bus.publish(PROFILE_CHANGED, {"id": profile.id})
        return written

    # ------------------------------------------------------------------
    # Lecture
    # ------------------------------------------------------------------

    def query_diary(self, entry_date, class_section_id: Optional[str] = None) -> List[DiaryEntryResponse]:
        """Flux affiché par l'écran : entrées d'une date (et d'une classe), hors suppressions locales."""
        stmt = select(DiaryEntry).where(
            DiaryEntry.entry_date == to_calendar_date(entry_date),
            DiaryEntry.sync_status != DELETED,
        )
        if class_section_id:
            stmt = stmt.where(DiaryEntry.class_section_id == class_section_id)
        stmt = stmt.order_by(DiaryEntry.subject_name, DiaryEntry.created_at)

        with self._session_factory() as db:
            entries = db.execute(stmt).scalars().all()
            return [DiaryEntryResponse.model_validate(e) for e in entries]

    def get_entry(self, entry_id: str) -> Optional[DiaryEntryResponse]:
        with self._session_factory() as db:
            entry = db.get(DiaryEntry, entry_id)
            return DiaryEntryResponse.model_validate(entry) if entry else None

    def get_profile(self) -> Optional[UserProfileResponse]:
        with self._session_factory() as db:
            profile = db.execute(select(UserProfile)).scalars().first()
            return UserProfileResponse.model_validate(profile) if profile else None

    def observe_diary(
        self,
        entry_date,
        class_section_id: Optional[str],
        callback: Callable[[List[DiaryEntryResponse]], None],
    ) -> DiaryQuerySubscription:
        """Souscrit au flux d'une date ; le callback est appelé immédiatement puis à chaque mutation pertinente."""
        subscription = DiaryQuerySubscription(self, to_calendar_date(entry_date), class_section_id, callback)
        self.event_bus.subscribe(DIARY_CHANGED, subscription.notify)
        subscription.refresh()
        return subscription

    # ------------------------------------------------------------------
    # Mutations locales (personnel) → poussées au prochain cycle
    # ------------------------------------------------------------------

    def create_entry(self, data: DiaryEntryCreate) -> DiaryEntryResponse:
        now = self._clock()
        values = data.model_dump()
        values["entry_date"] = data.entry_date.isoformat()
        values["homework_due_date"] = data.homework_due_date.isoformat() if data.homework_due_date else None

        with self._write_lock, self._session_factory() as db:
            entry = DiaryEntry(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sync_status=CREATED,
                **values,
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            response = DiaryEntryResponse.model_validate(entry)

        logger.info("Entrée locale créée : %s (%s)", response.id, response.entry_date)
        self._publish_diary_change({(response.entry_date, response.class_section_id)})
        return response

    def update_entry(self, entry_id: str, data: DiaryEntryUpdate) -> DiaryEntryResponse:
        """Lève DiaryEntryNotFoundError si l'entrée est inconnue ou supprimée localement."""
        with self._write_lock, self._session_factory() as db:
            entry = db.get(DiaryEntry, entry_id)
            if entry is None or entry.sync_status == DELETED:
                raise DiaryEntryNotFoundError(f"Entrée {entry_id} introuvable.")

            affected = {(entry.entry_date, entry.class_section_id)}
            for name, value in data.model_dump(exclude_unset=True).items():
                if value is None and name in ("entry_date", "content"):
                    continue
                if name in ("entry_date", "homework_due_date") and value is not None:
                    value = value.isoformat()
                setattr(entry, name, value)

            entry.updated_at = max(self._clock(), entry.updated_at + 1)
            if entry.sync_status != CREATED:
                entry.sync_status = UPDATED

            db.commit()
            db.refresh(entry)
            response = DiaryEntryResponse.model_validate(entry)

        affected.add((response.entry_date, response.class_section_id))
        self._publish_diary_change(affected)
        return response

    def delete_entry(self, entry_id: str) -> None:
        """
        Supprime une entrée localement.
        Jamais poussée (created) → suppression immédiate, sans appel distant.
        Sinon → marquée deleted, masquée des lectures, supprimée au push.
        """
        with self._write_lock, self._session_factory() as db:
            entry = db.get(DiaryEntry, entry_id)
            if entry is None or entry.sync_status == DELETED:
                raise DiaryEntryNotFoundError(f"Entrée {entry_id} introuvable.")

            key = (entry.entry_date, entry.class_section_id)
            if entry.sync_status == CREATED:
                db.delete(entry)
            else:
                entry.sync_status = DELETED
                entry.updated_at = max(self._clock(), entry.updated_at + 1)
            db.commit()

        self._publish_diary_change({key})

    # ------------------------------------------------------------------
    # Push : suivi des modifications
    # ------------------------------------------------------------------

    def pending_changes(self) -> PendingChanges:
        with self._session_factory() as db:
            entries = db.execute(
                select(DiaryEntry)
                .where(DiaryEntry.sync_status != SYNCED)
                .order_by(DiaryEntry.updated_at)
            ).scalars().all()

            changes = PendingChanges()
            buckets = {CREATED: changes.created, UPDATED: changes.updated, DELETED: changes.deleted}
            for entry in entries:
                buckets[entry.sync_status].append(DiaryEntryResponse.model_validate(entry))
            return changes

    def mark_synced(self, entry_id: str, updated_at: int) -> bool:
        """
        Marque une entrée poussée comme synchronisée.
        Sans effet si elle a été modifiée ou supprimée depuis la lecture du push.
        """
        with self._write_lock, self._session_factory() as db:
            entry = db.get(DiaryEntry, entry_id)
            if entry is None or entry.updated_at != updated_at or entry.sync_status not in (CREATED, UPDATED):
                return False
            entry.sync_status = SYNCED
            db.commit()
            return True

    def purge(self, entry_id: str) -> bool:
        """Efface définitivement une entrée dont la suppression a été poussée."""
        with self._write_lock, self._session_factory() as db:
            entry = db.get(DiaryEntry, entry_id)
            if entry is None or entry.sync_status != DELETED:
                return False
            db.delete(entry)
            db.commit()
            return True

    # ------------------------------------------------------------------
    # Déconnexion
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Vide le cache (journal + profil) et remet le watermark à 0."""
        with self._write_lock, self._session_factory() as db:
            db.execute(delete(DiaryEntry))
            db.execute(delete(UserProfile))
            state = db.get(SyncState, SYNC_STATE_ID)
            if state is not None:
                state.last_pulled_at = 0
            db.commit()
            self._generation += 1

        logger.info("Cache local vidé, watermark remis à 0.")
        self.event_bus.publish(DIARY_CHANGED, {"keys": None})

    def _publish_diary_change(self, keys) -> None:
        self.event_bus.publish(DIARY_CHANGED, {"keys": frozenset(keys)})
