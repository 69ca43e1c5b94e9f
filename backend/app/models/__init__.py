# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant la création du schéma local (init_local_db).

from app.models.diary_entry import DiaryEntry  # noqa: F401
from app.models.user import UserProfile  # noqa: F401
from app.models.sync_state import SyncState  # noqa: F401
