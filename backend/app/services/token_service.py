"""
Jetons d'accès JWT (HS256) émis après une inscription ou une connexion réussie.
Le jeton ne transporte que l'id de l'utilisateur (claim `sub`).
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional

import jwt

from app.clock import utcnow
from app.config import settings


def issue_token(user_id: uuid.UUID, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def resolve_token(token: str) -> Optional[uuid.UUID]:
    """Retourne l'id de l'utilisateur, ou None si le jeton est invalide ou expiré."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError, TypeError):
        return None
