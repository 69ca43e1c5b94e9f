"""
Schémas Pydantic pour la session de l'utilisateur sur l'appareil.
"""

from pydantic import BaseModel, field_validator


class SessionTokenRequest(BaseModel):
    access_token: str

    @field_validator("access_token")
    @classmethod
    def token_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le jeton d'accès ne peut pas être vide.")
        return v.strip()


class SessionStatus(BaseModel):
    authenticated: bool
