"""
Schémas Pydantic pour la synchronisation du journal (pull puis push).

Flux distant consommé :
  GET /diary?updated_since=<watermark>[&class_section_id=...]  → enregistrements bruts
  GET /auth/me                                                 → profil de l'utilisateur
Les enregistrements bruts sont normalisés ici vers la forme du cache local :
dates calendaires "YYYY-MM-DD" et timestamps epoch en millisecondes.
"""

import datetime as dt
from typing import Any, List, Optional

from pydantic import BaseModel, field_validator, model_validator


def to_calendar_date(value: Any) -> Optional[str]:
    """Normalise une date (date, datetime ou chaîne ISO) en "YYYY-MM-DD"."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date().isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    return dt.date.fromisoformat(str(value).strip()[:10]).isoformat()


def to_epoch_ms(value: Any) -> Optional[int]:
    """
    Normalise un timestamp en epoch millisecondes.
    Les nombres sont déjà des millisecondes ; une chaîne ou un datetime sans
    fuseau est interprété en UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, dt.datetime):
        moment = value
    else:
        raw = str(value).strip()
        if raw.lstrip("-").isdigit():
            return int(raw)
        moment = dt.datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.timezone.utc)
    return int(moment.timestamp() * 1000)


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


class RemoteDiaryRecord(BaseModel):
    """Enregistrement brut du flux distant, déjà normalisé pour le cache local."""

    id: str
    class_section_id: str = ""
    entry_date: str
    subject_id: Optional[str] = None
    title: Optional[str] = None
    content: str = ""
    homework_due_date: Optional[str] = None
    attachments: List[Any] = []
    subject_name: Optional[str] = None
    created_by: str = ""
    created_at: int
    updated_at: Optional[int] = None

    model_config = {"extra": "ignore"}

    @field_validator("id", "class_section_id", "subject_id", "created_by", mode="before")
    @classmethod
    def ids_as_strings(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("class_section_id", "created_by", "content", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("entry_date", mode="before")
    @classmethod
    def entry_date_as_calendar_date(cls, v: Any) -> str:
        normalized = to_calendar_date(v)
        if normalized is None:
            raise ValueError("entry_date manquante.")
        return normalized

    @field_validator("homework_due_date", mode="before")
    @classmethod
    def due_date_as_calendar_date(cls, v: Any) -> Optional[str]:
        return to_calendar_date(v)

    @field_validator("attachments", mode="before")
    @classmethod
    def sanitize_attachments(cls, v: Any) -> list:
        return _as_list(v)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def timestamps_as_epoch_ms(cls, v: Any) -> Optional[int]:
        return to_epoch_ms(v)

    @model_validator(mode="after")
    def updated_at_fallback(self) -> "RemoteDiaryRecord":
        # Le flux ne fournit pas toujours updated_at : on retombe sur created_at
        if self.updated_at is None:
            self.updated_at = self.created_at
        return self


class RemoteUserProfile(BaseModel):
    """Profil de l'utilisateur courant tel que renvoyé par GET /auth/me."""

    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    display_name: str = ""
    role: str = ""
    photo_url: Optional[str] = None
    permissions: List[Any] = []
    class_section_id: Optional[str] = None

    model_config = {"extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def role_from_roles(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("role") and data.get("roles"):
            roles = data["roles"]
            if isinstance(roles, (list, tuple)) and roles:
                data = {**data, "role": roles[0]}
        return data

    @field_validator("id", "class_section_id", mode="before")
    @classmethod
    def ids_as_strings(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("email", "first_name", "last_name", "display_name", "role", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("permissions", mode="before")
    @classmethod
    def sanitize_permissions(cls, v: Any) -> list:
        return _as_list(v)

    @model_validator(mode="after")
    def display_name_fallback(self) -> "RemoteUserProfile":
        if not self.display_name:
            self.display_name = f"{self.first_name} {self.last_name}".strip()
        return self

    @property
    def is_student(self) -> bool:
        return self.role.strip().lower() == "student"


class DiaryPullResult(BaseModel):
    """Résultat de la phase pull : enregistrements + horodatage "as of" du lot."""

    records: List[RemoteDiaryRecord]
    timestamp: int


class PushFailure(BaseModel):
    """Échec d'un appel push individuel (best-effort, remonté dans le rapport)."""

    entry_id: str
    operation: str  # created, updated, deleted
    message: str


class SyncReport(BaseModel):
    """Rapport d'un cycle de synchronisation réussi."""

    pulled: int
    pushed_created: int = 0
    pushed_updated: int = 0
    pushed_deleted: int = 0
    push_failures: List[PushFailure] = []
    last_pulled_at: int


class SyncStatus(BaseModel):
    """État courant du cache local : watermark et modifications en attente de push."""

    last_pulled_at: int
    schema_version: int
    pending_created: int
    pending_updated: int
    pending_deleted: int
