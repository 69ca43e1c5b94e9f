"""
Schémas Pydantic pour le journal de classe lu depuis le cache local.

Note : on importe datetime en tant que module (dt) pour éviter le conflit de nommage
entre les champs de date et le type `datetime.date` dans Pydantic v2.
"""

import datetime as dt
from typing import Any, List, Optional

from pydantic import BaseModel, field_validator


class DiaryEntryCreate(BaseModel):
    """Entrée saisie hors-ligne par un membre du personnel."""
    class_section_id: str
    entry_date: dt.date
    subject_id: Optional[str] = None
    title: Optional[str] = None
    content: str
    homework_due_date: Optional[dt.date] = None
    attachments: List[str] = []
    subject_name: Optional[str] = None
    created_by: str

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le contenu de l'entrée ne peut pas être vide.")
        return v.strip()

    @field_validator("class_section_id", "created_by")
    @classmethod
    def reference_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("La référence ne peut pas être vide.")
        return v.strip()


class DiaryEntryUpdate(BaseModel):
    entry_date: Optional[dt.date] = None
    subject_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    homework_due_date: Optional[dt.date] = None
    attachments: Optional[List[str]] = None
    subject_name: Optional[str] = None

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Le contenu de l'entrée ne peut pas être vide.")
        return v.strip() if v is not None else v


class DiaryEntryResponse(BaseModel):
    id: str
    class_section_id: str
    entry_date: str
    subject_id: Optional[str]
    title: Optional[str]
    content: str
    homework_due_date: Optional[str]
    attachments: List[Any]
    subject_name: Optional[str]
    created_by: str
    created_at: int
    updated_at: int
    sync_status: str

    model_config = {"from_attributes": True}

    def to_remote_payload(self) -> dict:
        """Corps envoyé au serveur lors du push (sans l'état de synchronisation local)."""
        return self.model_dump(exclude={"sync_status"})


class UserProfileResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    display_name: str
    role: str
    photo_url: Optional[str]
    permissions: List[Any]
    class_section_id: Optional[str]

    model_config = {"from_attributes": True}
