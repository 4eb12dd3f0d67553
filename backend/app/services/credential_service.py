"""
Service des identifiants de connexion : création, changement d'email et
machine à états du verrouillage anti brute-force.

Règles du verrouillage :
- chaque échec incrémente failed_login_attempts ;
- au 5e échec consécutif (configurable), locked_until = now + 30 minutes ;
- un succès ou un déverrouillage explicite remet le compteur à 0 et efface locked_until.

Les compteurs sont modifiés par un seul UPDATE atomique (jamais lecture puis écriture),
pour que deux tentatives concurrentes ne perdent pas d'incrément.
"""

import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

import bcrypt
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import NotFound, ValidationError
from app.models.user_credential import UserCredential

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_BYTES = 72  # limite de bcrypt

EMAIL_TAKEN_MESSAGE = "Cet email est déjà utilisé."


# --- Mots de passe ---

def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Hash corrompu ou mot de passe hors limites : traité comme un échec
        return False


# --- Validation ---

def validate_email(db: Session, email: Optional[str], exclude_id: Optional[int] = None) -> List[str]:
    """Retourne la liste des erreurs sur l'email (vide si valide)."""
    if email is None or not email.strip():
        return ["L'email est obligatoire."]
    if not EMAIL_REGEX.match(email):
        return ["L'email n'est pas valide."]

    query = select(UserCredential.id).where(UserCredential.email == email)
    if exclude_id is not None:
        query = query.where(UserCredential.id != exclude_id)
    if db.execute(query).first() is not None:
        return [EMAIL_TAKEN_MESSAGE]
    return []


def validate_password(password: Optional[str], confirmation: Optional[str] = None) -> List[str]:
    """Retourne la liste des erreurs sur le mot de passe (vide si valide)."""
    if not password:
        return ["Le mot de passe est obligatoire."]

    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Le mot de passe est trop court ({PASSWORD_MIN_LENGTH} caractères minimum).")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        errors.append(f"Le mot de passe est trop long ({PASSWORD_MAX_BYTES} octets maximum).")
    if confirmation is not None and confirmation != password:
        errors.append("La confirmation ne correspond pas au mot de passe.")
    return errors


def validate_credential(
    db: Session, email: Optional[str], password: Optional[str], confirmation: Optional[str] = None
) -> List[str]:
    return validate_email(db, email) + validate_password(password, confirmation)


# --- Création / lecture ---

def build_credential(user_id: uuid.UUID, email: str, password: str) -> UserCredential:
    """Construit (sans l'ajouter à la session) un identifiant déjà validé."""
    return UserCredential(
        user_id=user_id,
        email=email,
        password_hash=hash_password(password),
        failed_login_attempts=0,
        locked_until=None,
        last_login_at=None,
    )


def create_credential(
    db: Session,
    user_id: uuid.UUID,
    email: Optional[str],
    password: Optional[str],
    confirmation: Optional[str] = None,
) -> UserCredential:
    """
    Crée les identifiants d'un utilisateur existant.
    Lève ValidationError avec toutes les erreurs si l'email ou le mot de passe est invalide.
    """
    errors = validate_credential(db, email, password, confirmation)
    if errors:
        raise ValidationError(errors)

    credential = build_credential(user_id, email, password)
    db.add(credential)
    try:
        db.commit()
    except IntegrityError:
        # Course entre deux inscriptions avec le même email : la contrainte UNIQUE tranche
        db.rollback()
        raise ValidationError([EMAIL_TAKEN_MESSAGE])
    db.refresh(credential)
    return credential


def get_by_email(db: Session, email: str) -> Optional[UserCredential]:
    """Recherche exacte (sensible à la casse)."""
    return db.execute(
        select(UserCredential).where(UserCredential.email == email)
    ).scalar_one_or_none()


def get_by_user_id(db: Session, user_id: uuid.UUID) -> Optional[UserCredential]:
    return db.execute(
        select(UserCredential).where(UserCredential.user_id == user_id)
    ).scalar_one_or_none()


def _get_or_raise(db: Session, credential_id: int) -> UserCredential:
    credential = db.get(UserCredential, credential_id)
    if credential is None:
        raise NotFound(f"Identifiants {credential_id} introuvables.")
    return credential


def update_email(db: Session, credential_id: int, new_email: Optional[str]) -> None:
    """Change l'email de connexion. Mêmes règles qu'à la création."""
    credential = _get_or_raise(db, credential_id)

    errors = validate_email(db, new_email, exclude_id=credential.id)
    if errors:
        raise ValidationError(errors)

    credential.email = new_email
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError([EMAIL_TAKEN_MESSAGE])


# --- Machine à états du verrouillage ---

def record_success(db: Session, credential_id: int, now: datetime) -> None:
    """Connexion réussie : compteur à 0, verrou levé, date de dernière connexion mise à jour."""
    result = db.execute(
        update(UserCredential)
        .where(UserCredential.id == credential_id)
        .values(failed_login_attempts=0, locked_until=None, last_login_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound(f"Identifiants {credential_id} introuvables.")
    db.commit()


def record_failure(db: Session, credential_id: int, now: datetime) -> bool:
    """
    Incrémente le compteur d'échecs et verrouille le compte au seuil.
    Retourne True si le compte vient d'être (re)verrouillé.

    Un seul UPDATE ... RETURNING : l'incrément et la pose du verrou sont atomiques
    vis-à-vis des lectures de is_locked faites par les requêtes suivantes.
    """
    max_attempts = settings.MAX_FAILED_LOGIN_ATTEMPTS
    lock_until = now + timedelta(minutes=settings.LOCK_DURATION_MINUTES)

    # Dans un UPDATE, le membre droit lit l'ancienne valeur de la colonne
    new_count = db.execute(
        update(UserCredential)
        .where(UserCredential.id == credential_id)
        .values(
            failed_login_attempts=UserCredential.failed_login_attempts + 1,
            locked_until=case(
                (UserCredential.failed_login_attempts + 1 >= max_attempts, lock_until),
                else_=UserCredential.locked_until,
            ),
        )
        .returning(UserCredential.failed_login_attempts)
        .execution_options(synchronize_session=False)
    ).scalar_one_or_none()

    if new_count is None:
        db.rollback()
        raise NotFound(f"Identifiants {credential_id} introuvables.")
    db.commit()

    locked_now = new_count >= max_attempts
    if locked_now:
        logger.info(
            "Compte verrouillé jusqu'à %s après %d échecs (identifiants %s)",
            lock_until, new_count, credential_id,
        )
    return locked_now


def is_locked(db: Session, credential_id: int, now: datetime) -> bool:
    """Verrouillé tant que locked_until est strictement dans le futur."""
    row = db.execute(
        select(UserCredential.locked_until).where(UserCredential.id == credential_id)
    ).one_or_none()
    if row is None:
        raise NotFound(f"Identifiants {credential_id} introuvables.")
    return row.locked_until is not None and row.locked_until > now


def unlock(db: Session, credential_id: int) -> None:
    """Déverrouillage explicite : efface locked_until et remet le compteur à 0."""
    result = db.execute(
        update(UserCredential)
        .where(UserCredential.id == credential_id)
        .values(failed_login_attempts=0, locked_until=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound(f"Identifiants {credential_id} introuvables.")
    db.commit()
    logger.info("Compte déverrouillé (identifiants %s)", credential_id)
