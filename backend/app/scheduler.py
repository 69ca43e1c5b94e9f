"""
Planificateur APScheduler du service local.

- Synchronisation automatique du journal toutes les AUTO_SYNC_INTERVAL_MINUTES
  (partage le verrou du SyncCoordinator : jamais deux cycles en parallèle).
- Les jobs heartbeat des trajets actifs sont ajoutés / retirés par le LocationReporter.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import settings
from app.exceptions import SyncError

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()

AUTO_SYNC_JOB_ID = "diary_auto_sync"


def _sync_diary_scheduled(coordinator) -> None:
    """Tâche planifiée : cycle de synchronisation du journal, échec loggé seulement."""
    try:
        report = coordinator.sync()
        logger.info("Sync automatique : %d entrées reçues, watermark=%d", report.pulled, report.last_pulled_at)
    except SyncError as exc:
        logger.warning("Sync automatique en échec, nouvel essai au prochain passage : %s", exc)


def start_scheduler(sync_coordinator=None) -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage du service)."""
    if sync_coordinator is not None and settings.AUTO_SYNC_INTERVAL_MINUTES > 0:
        scheduler.add_job(
            _sync_diary_scheduled,
            trigger="interval",
            minutes=settings.AUTO_SYNC_INTERVAL_MINUTES,
            args=[sync_coordinator],
            id=AUTO_SYNC_JOB_ID,
            replace_existing=True,
        )
    if not scheduler.running:
        scheduler.start()
    logger.info(
        "Scheduler démarré, sync automatique : %s.",
        f"toutes les {settings.AUTO_SYNC_INTERVAL_MINUTES} min" if settings.AUTO_SYNC_INTERVAL_MINUTES > 0 else "désactivée",
    )


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt du service)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
