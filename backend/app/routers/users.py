"""
Router des utilisateurs : consultation, mise à jour, suppression,
journal des statuts et déverrouillage.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from app.clock import utcnow
from app.database import get_db
from app.dependencies import get_current_user_id, require_admin
from app.exceptions import NotFound, ValidationError
from app.models.user_status import StatusValue
from app.schemas.user import (
    StatusChange,
    StatusRecordResponse,
    UserEnvelope,
    UserListResponse,
    UserUpdate,
)
from app.services import auth_service, status_service, user_service

router = APIRouter(prefix="/api/v1/users", tags=["Utilisateurs"])


def _parse_status(value: Optional[str]) -> Optional[StatusValue]:
    # Un statut inconnu ne filtre pas (liste complète)
    try:
        return StatusValue(value) if value else None
    except ValueError:
        return None


@router.get("", response_model=UserListResponse, summary="Lister les utilisateurs")
def list_users(
    status: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    per_page: int = 20,
    db: Session = Depends(get_db),
):
    """Liste paginée, filtrable par statut courant (active, suspended, deleted) et par texte."""
    users = user_service.list_users(db, status=_parse_status(status), text=q, page=page, per_page=per_page)
    return UserListResponse(users=users)


@router.get("/{user_id}", response_model=UserEnvelope, summary="Détail d'un utilisateur")
def get_user(user_id: uuid.UUID, db: Session = Depends(get_db)):
    user = user_service.get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="Utilisateur introuvable.")
    return UserEnvelope(user=user)


@router.put("/{user_id}", response_model=UserEnvelope, summary="Modifier son compte")
def update_user(
    user_id: uuid.UUID,
    data: UserUpdate,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Met à jour l'email et/ou le profil. Réservé à l'utilisateur lui-même."""
    if current_user_id != user_id:
        raise HTTPException(status_code=403, detail="Accès refusé.")
    try:
        user = user_service.update_user(db, user_id, data)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.messages)
    if user is None:
        raise HTTPException(status_code=404, detail="Utilisateur introuvable.")
    return UserEnvelope(user=user)


@router.delete("/{user_id}", status_code=204, summary="Supprimer son compte")
def delete_user(
    user_id: uuid.UUID,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Suppression définitive (identifiants, profil et journal des statuts compris)."""
    if current_user_id != user_id:
        raise HTTPException(status_code=403, detail="Accès refusé.")
    if not user_service.delete_user(db, user_id):
        raise HTTPException(status_code=404, detail="Utilisateur introuvable.")
    return Response(status_code=204)


@router.post(
    "/{user_id}/status",
    response_model=StatusRecordResponse,
    status_code=201,
    summary="Changer le statut d'un utilisateur",
)
def change_status(
    user_id: uuid.UUID,
    data: StatusChange,
    admin_id: uuid.UUID = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Ajoute une entrée au journal des statuts (les entrées existantes ne changent jamais)."""
    try:
        return auth_service.change_status(
            db, user_id, data.status, utcnow(), reason=data.reason, actor_id=admin_id
        )
    except NotFound:
        raise HTTPException(status_code=404, detail="Utilisateur introuvable.")


@router.get(
    "/{user_id}/statuses",
    response_model=List[StatusRecordResponse],
    summary="Historique des statuts",
)
def status_history(user_id: uuid.UUID, db: Session = Depends(get_db)):
    """Journal complet, du plus récent au plus ancien."""
    if user_service.get_user(db, user_id) is None:
        raise HTTPException(status_code=404, detail="Utilisateur introuvable.")
    return status_service.history(db, user_id)


@router.post("/{user_id}/unlock", status_code=204, summary="Déverrouiller un compte")
def unlock_user(
    user_id: uuid.UUID,
    admin_id: uuid.UUID = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Lève le verrouillage et remet à zéro le compteur d'échecs."""
    try:
        auth_service.unlock_user(db, user_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Utilisateur introuvable.")
    return Response(status_code=204)
