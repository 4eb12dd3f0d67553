"""
Dépendances FastAPI d'authentification : jeton Bearer → utilisateur courant.
"""

import uuid
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.clock import utcnow
from app.config import settings
from app.database import get_db
from app.exceptions import NotFound
from app.services import auth_service, credential_service, token_service

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> uuid.UUID:
    """
    Résout le jeton en id utilisateur.
    401 si le jeton est absent, invalide ou vise un utilisateur supprimé ;
    403 si le compte n'est plus autorisé à agir (suspendu, supprimé ou verrouillé).
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Authentification requise.")

    user_id = token_service.resolve_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentification requise.")

    try:
        allowed = auth_service.can_login(db, user_id, utcnow())
    except NotFound:
        raise HTTPException(status_code=401, detail="Authentification requise.")
    if not allowed:
        raise HTTPException(status_code=403, detail="Le compte est suspendu ou supprimé.")
    return user_id


def require_admin(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> uuid.UUID:
    """Réserve l'action aux comptes listés dans ADMIN_EMAILS."""
    credential = credential_service.get_by_user_id(db, user_id)
    if credential is None or credential.email not in settings.ADMIN_EMAILS:
        raise HTTPException(status_code=403, detail="Action réservée aux administrateurs.")
    return user_id
