"""
Router de session : jeton d'accès transmis par l'app mobile et déconnexion.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_session
from app.schemas.session import SessionStatus, SessionTokenRequest
from app.services.session_service import SessionService

router = APIRouter(prefix="/api/v1/session", tags=["Session"])


@router.get("", response_model=SessionStatus, summary="État de la session")
def get_session_status(session: SessionService = Depends(get_session)):
    return SessionStatus(authenticated=session.is_authenticated)


@router.put("", response_model=SessionStatus, summary="Enregistrer le jeton d'accès")
def set_token(data: SessionTokenRequest, session: SessionService = Depends(get_session)):
    session.set_access_token(data.access_token)
    return SessionStatus(authenticated=session.is_authenticated)


@router.delete("", status_code=204, summary="Se déconnecter")
def logout(session: SessionService = Depends(get_session)):
    """Arrête le suivi de trajet, vide le cache local et remet le watermark à 0."""
    session.logout()
