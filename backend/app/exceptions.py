"""
Erreurs métier du service local.

Les erreurs de précondition sont levées AVANT tout appel distant, ne sont jamais
rejouées automatiquement et portent un message affichable tel quel à l'utilisateur.
"""


class PreconditionError(ValueError):
    """Action refusée localement : l'état courant ne la permet pas."""


class NoBusAssignedError(PreconditionError):
    pass


class NoRouteSelectedError(PreconditionError):
    pass


class InvalidStopTransitionError(PreconditionError):
    pass


class NoActiveTripError(PreconditionError):
    pass


class TripAlreadyActiveError(PreconditionError):
    pass


class ConfirmationRequiredError(PreconditionError):
    """Action irréversible demandée sans confirmation explicite."""


class DiaryEntryNotFoundError(ValueError):
    pass


class SyncError(Exception):
    """Échec d'un cycle de synchronisation (phase pull ou application locale)."""


class CacheResetError(SyncError):
    """Cache local réinitialisé (déconnexion) pendant un cycle : le lot en cours est abandonné."""
