"""
Service métier pour les utilisateurs : profil, projection publique, liste filtrée,
mise à jour et suppression.
"""

import logging
import uuid
from datetime import date
from typing import List, Optional
from urllib.parse import urlparse

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import ValidationError
from app.models.user import User, UserProfile
from app.models.user_credential import UserCredential
from app.models.user_status import StatusValue
from app.schemas.user import ProfileResponse, UserResponse, UserUpdate
from app.services import credential_service, status_service

logger = logging.getLogger(__name__)

USERNAME_MAX_LENGTH = 50
BIO_MAX_LENGTH = 500
DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100

PROFILE_FIELDS = ("username", "bio", "avatar_url", "website_url", "birth_date")


# --- Profil ---

def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_profile(attrs: dict, partial: bool = False, today: Optional[date] = None) -> List[str]:
    """
    Retourne toutes les erreurs du profil (liste vide si valide).
    En mode partiel, seuls les champs présents dans `attrs` sont vérifiés.
    """
    errors = []
    today = today or date.today()

    if not partial or "username" in attrs:
        username = attrs.get("username")
        if username is None or not username.strip():
            errors.append("Le nom d'utilisateur est obligatoire.")
        elif len(username) > USERNAME_MAX_LENGTH:
            errors.append(f"Le nom d'utilisateur est trop long ({USERNAME_MAX_LENGTH} caractères maximum).")

    bio = attrs.get("bio")
    if bio and len(bio) > BIO_MAX_LENGTH:
        errors.append(f"La bio est trop longue ({BIO_MAX_LENGTH} caractères maximum).")

    if attrs.get("avatar_url") and not _is_http_url(attrs["avatar_url"]):
        errors.append("L'URL de l'avatar n'est pas valide.")
    if attrs.get("website_url") and not _is_http_url(attrs["website_url"]):
        errors.append("L'URL du site web n'est pas valide.")

    birth_date = attrs.get("birth_date")
    if birth_date is not None and birth_date >= today:
        errors.append("La date de naissance doit être dans le passé.")

    return errors


def build_profile(user_id: uuid.UUID, attrs: dict) -> UserProfile:
    """Construit (sans l'ajouter à la session) un profil déjà validé."""
    values = {field: attrs.get(field) for field in PROFILE_FIELDS}
    values["username"] = values["username"].strip()
    return UserProfile(user_id=user_id, **values)


def _get_profile(db: Session, user_id: uuid.UUID) -> Optional[UserProfile]:
    return db.execute(
        select(UserProfile).where(UserProfile.user_id == user_id)
    ).scalar_one_or_none()


# --- Lecture ---

def get_user(db: Session, user_id: uuid.UUID) -> Optional[UserResponse]:
    """Retourne la projection publique d'un utilisateur, ou None s'il n'existe pas."""
    user = db.get(User, user_id)
    if user is None:
        return None
    return _to_response(db, user)


def search(query, text: Optional[str]):
    """Recherche LIKE sur l'email ou le nom d'utilisateur. Requête inchangée si `text` est vide."""
    if not text:
        return query
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return (
        query.join(UserCredential, UserCredential.user_id == User.id)
        .join(UserProfile, UserProfile.user_id == User.id)
        .where(or_(
            UserCredential.email.like(pattern, escape="\\"),
            UserProfile.username.like(pattern, escape="\\"),
        ))
    )


def paginate(query, page: Optional[int], per_page: Optional[int]):
    page = max(page or 1, 1)
    per_page = min(max(per_page or DEFAULT_PER_PAGE, 1), MAX_PER_PAGE)
    return query.offset((page - 1) * per_page).limit(per_page)


def list_users(
    db: Session,
    status: Optional[StatusValue] = None,
    text: Optional[str] = None,
    page: Optional[int] = None,
    per_page: Optional[int] = None,
) -> List[UserResponse]:
    """
    Liste paginée des utilisateurs. Chaque filtre absent laisse la requête inchangée,
    ce qui permet de les composer librement.
    """
    query = select(User).order_by(User.created_at, User.id)
    query = status_service.filter_by_status(query, status)
    query = search(query, text)
    query = paginate(query, page, per_page)

    users = db.execute(query).scalars().all()
    return [_to_response(db, u) for u in users]


# --- Écriture ---

def update_user(db: Session, user_id: uuid.UUID, data: UserUpdate) -> Optional[UserResponse]:
    """
    Met à jour l'email et/ou le profil. Toutes les erreurs (email + profil) sont
    renvoyées ensemble ; rien n'est modifié si l'une d'elles est présente.
    Retourne None si l'utilisateur n'existe pas.
    """
    user = db.get(User, user_id)
    if user is None:
        return None

    update_data = data.model_dump(exclude_unset=True)
    credential = credential_service.get_by_user_id(db, user_id)
    profile = _get_profile(db, user_id)

    errors = []
    if "email" in update_data:
        errors += credential_service.validate_email(db, update_data["email"], exclude_id=credential.id)
    profile_data = {k: v for k, v in update_data.items() if k in PROFILE_FIELDS}
    errors += validate_profile(profile_data, partial=True)
    if errors:
        raise ValidationError(errors)

    if "email" in update_data:
        credential.email = update_data["email"]
    for field, value in profile_data.items():
        setattr(profile, field, value.strip() if field == "username" else value)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError([credential_service.EMAIL_TAKEN_MESSAGE])
    db.refresh(user)
    return _to_response(db, user)


def delete_user(db: Session, user_id: uuid.UUID) -> bool:
    """
    Supprime un utilisateur. Identifiants, profil et journal des statuts sont supprimés
    par les ON DELETE CASCADE de la base (le journal refuse toute suppression directe).
    Retourne True si supprimé, False si non trouvé.
    """
    result = db.execute(delete(User).where(User.id == user_id))
    if result.rowcount == 0:
        db.rollback()
        return False
    db.commit()
    logger.info("Utilisateur supprimé : %s", user_id)
    return True


def _to_response(db: Session, user: User) -> UserResponse:
    """Construit la projection publique : email, profil et statut courant."""
    credential = credential_service.get_by_user_id(db, user.id)
    profile = _get_profile(db, user.id)
    current = status_service.current_status(db, user.id)

    profile_response = None
    if profile is not None:
        profile_response = ProfileResponse(
            username=profile.username,
            bio=profile.bio,
            avatar_url=profile.avatar_url,
            website_url=profile.website_url,
            birth_date=profile.birth_date,
            age=profile.age(),
        )

    return UserResponse(
        id=user.id,
        email=credential.email if credential else None,
        username=profile.username if profile else None,
        status=current.status if current else None,
        profile=profile_response,
        created_at=user.created_at,
    )
