"""
Schémas Pydantic pour les utilisateurs, leur profil et leur journal de statuts.
"""

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel

from app.models.user_status import StatusValue


class ProfileResponse(BaseModel):
    username: str
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    website_url: Optional[str] = None
    birth_date: Optional[date] = None
    age: Optional[int] = None

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    """Projection publique d'un utilisateur (identité + email + profil + statut courant)."""
    id: uuid.UUID
    email: Optional[str]
    username: Optional[str]
    status: Optional[StatusValue]
    profile: Optional[ProfileResponse]
    created_at: Optional[datetime]


class UserEnvelope(BaseModel):
    user: UserResponse


class UserListResponse(BaseModel):
    users: List[UserResponse]


class UserUpdate(BaseModel):
    """
    Mise à jour partielle (PUT /users/{id}) : seuls les champs fournis sont modifiés.
    Les règles métier (format email, longueurs, URLs) sont vérifiées par le service
    pour renvoyer toutes les erreurs d'un coup.
    """
    email: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    website_url: Optional[str] = None
    birth_date: Optional[date] = None


class StatusChange(BaseModel):
    """Changement de statut (POST /users/{id}/status)."""
    status: StatusValue
    reason: Optional[str] = None


class StatusRecordResponse(BaseModel):
    id: int
    user_id: uuid.UUID
    status: StatusValue
    reason: Optional[str]
    changed_by_user_id: Optional[uuid.UUID]
    effective_at: datetime
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}
