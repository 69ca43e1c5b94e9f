"""
Service de synchronisation du journal de classe : cycle pull puis push.

Ordre strict d'un cycle :
  1. Pull (chemin critique) : profil de l'utilisateur puis entrées modifiées depuis
     le watermark, limitées à la classe de l'élève le cas échéant.
  2. Application atomique du lot dans le cache local (tout ou rien).
  3. Push (best-effort) : un appel par entrée locale created / updated / deleted ;
     un appel en échec n'empêche pas les suivants et reste en attente pour le
     cycle suivant. Les échecs sont remontés dans le rapport.
  4. Avancement du watermark à l'horodatage du pull, jamais avant.

Un cycle en échec laisse le watermark intact : la même fenêtre sera re-téléchargée
(livraison au moins une fois). Les cycles concurrents sont sérialisés par un verrou.
Une réinitialisation du cache pendant le cycle (déconnexion) abandonne le lot :
le watermark reste à 0 et le prochain cycle refait un pull complet.
"""

import logging
import threading
from typing import List

from app.exceptions import CacheResetError, SyncError
from app.models.diary_entry import CREATED, DELETED, UPDATED
from app.remote.diary_api import DiaryFeedAPI
from app.schemas.sync import PushFailure, SyncReport
from app.services.call_policy import best_effort, critical
from app.services.local_store import LocalStore

logger = logging.getLogger(__name__)


class SyncCoordinator:

    def __init__(self, store: LocalStore, feed: DiaryFeedAPI) -> None:
        self._store = store
        self._feed = feed
        self._lock = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def sync(self) -> SyncReport:
        """
        Exécute un cycle complet. Un appel concurrent attend la fin du cycle en cours.
        Lève SyncError si le pull (profil ou flux) ou son application locale échoue.
        """
        with self._lock:
            return self._run_cycle()

    def _run_cycle(self) -> SyncReport:
        # Une déconnexion en cours de cycle (401 au push, DELETE /session) périme le lot
        generation = self._store.generation
        last_pulled_at = self._store.get_watermark()

        # 1. Pull : le profil en premier, il détermine la portée du flux (classe de l'élève)
        profile = critical("pull du profil", self._feed.fetch_profile, error_cls=SyncError)
        scope = profile.class_section_id if profile.is_student else None
        pull = critical(
            "pull du journal",
            self._feed.fetch_changes,
            last_pulled_at,
            scope,
            error_cls=SyncError,
        )

        # 2. Application atomique
        critical(
            "application du lot pull",
            self._store.apply_pull,
            pull.records,
            profile,
            generation=generation,
            error_cls=SyncError,
        )

        # 3. Push best-effort
        report = SyncReport(pulled=len(pull.records), last_pulled_at=last_pulled_at)
        report.push_failures = self._push(report)

        # 4. Watermark
        try:
            report.last_pulled_at = self._store.advance_watermark(pull.timestamp, generation=generation)
        except CacheResetError:
            logger.warning("Cache réinitialisé pendant la synchronisation : watermark non avancé.")
            raise

        logger.info(
            "Sync terminée : %d reçues, %d/%d/%d poussées (créées/modifiées/supprimées), %d échecs, watermark=%d",
            report.pulled,
            report.pushed_created,
            report.pushed_updated,
            report.pushed_deleted,
            len(report.push_failures),
            report.last_pulled_at,
        )
        return report

    def _push(self, report: SyncReport) -> List[PushFailure]:
        failures: List[PushFailure] = []
        changes = self._store.pending_changes()

        for entry in changes.created:
            outcome = best_effort(f"push création {entry.id}", self._feed.create_entry, entry.to_remote_payload())
            if outcome.ok:
                self._store.mark_synced(entry.id, entry.updated_at)
                report.pushed_created += 1
            else:
                failures.append(PushFailure(entry_id=entry.id, operation=CREATED, message=str(outcome.error)))

        for entry in changes.updated:
            outcome = best_effort(
                f"push modification {entry.id}",
                self._feed.update_entry,
                entry.id,
                entry.to_remote_payload(),
            )
            if outcome.ok:
                self._store.mark_synced(entry.id, entry.updated_at)
                report.pushed_updated += 1
            else:
                failures.append(PushFailure(entry_id=entry.id, operation=UPDATED, message=str(outcome.error)))

        for entry in changes.deleted:
            outcome = best_effort(f"push suppression {entry.id}", self._feed.delete_entry, entry.id)
            if outcome.ok:
                self._store.purge(entry.id)
                report.pushed_deleted += 1
            else:
                failures.append(PushFailure(entry_id=entry.id, operation=DELETED, message=str(outcome.error)))

        return failures
