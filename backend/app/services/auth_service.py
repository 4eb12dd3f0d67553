"""
Service d'authentification : inscription, connexion, changement de statut.

Machine à états de la connexion, sur (verrouillage, statut courant) :
1. email inconnu                         → InvalidCredentials
2. compte verrouillé                     → InvalidCredentials (même si le mot de passe est bon)
3. mauvais mot de passe                  → échec comptabilisé, InvalidCredentials
4. bon mot de passe, statut ≠ active     → succès comptabilisé, AccountNotActive
5. sinon                                 → id de l'utilisateur

Les cas 1 à 3 sont volontairement indiscernables pour l'appelant (pas d'énumération
des comptes). Le cas 4 révèle l'état du compte : l'appelant a prouvé connaître le
mot de passe.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import AccountNotActive, InvalidCredentials, NotFound, ValidationError
from app.models.user import User
from app.models.user_status import StatusValue, UserStatus
from app.services import credential_service, status_service, user_service

logger = logging.getLogger(__name__)


def signup(
    db: Session,
    email: Optional[str],
    password: Optional[str],
    profile_attrs: dict,
    now: datetime,
    password_confirmation: Optional[str] = None,
) -> uuid.UUID:
    """
    Crée l'utilisateur, ses identifiants, son profil et son statut initial "active"
    en une seule transaction.

    Étapes :
    1. Valider identifiants ET profil, toutes les erreurs sont cumulées
    2. Insérer les quatre lignes
    3. Commit unique : en cas d'échec (email pris entre-temps), rien n'est conservé
    """
    errors = credential_service.validate_credential(db, email, password, password_confirmation)
    errors += user_service.validate_profile(profile_attrs)
    if errors:
        raise ValidationError(errors)

    try:
        user = User()
        db.add(user)
        db.flush()  # Obtenir l'ID avant le commit
        user_id = user.id

        db.add(credential_service.build_credential(user_id, email, password))
        db.add(user_service.build_profile(user_id, profile_attrs))
        status_service.append_initial(db, user_id, now)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError([credential_service.EMAIL_TAKEN_MESSAGE])

    logger.info("Nouvel utilisateur inscrit : %s", user_id)
    return user_id


def login(db: Session, email: str, password: str, now: datetime) -> uuid.UUID:
    """Vérifie les identifiants et retourne l'id de l'utilisateur à qui émettre un jeton."""
    credential = credential_service.get_by_email(db, email) if email else None
    if credential is None:
        logger.info("Connexion refusée : identifiants invalides")
        raise InvalidCredentials()

    # Lus avant les commits suivants, qui expirent l'objet
    credential_id = credential.id
    user_id = credential.user_id
    password_hash = credential.password_hash

    if credential_service.is_locked(db, credential_id, now):
        logger.info("Connexion refusée : compte verrouillé (utilisateur %s)", user_id)
        raise InvalidCredentials()

    if not credential_service.verify_password(password or "", password_hash):
        credential_service.record_failure(db, credential_id, now)
        logger.info("Connexion refusée : mauvais mot de passe (utilisateur %s)", user_id)
        raise InvalidCredentials()

    credential_service.record_success(db, credential_id, now)

    current = status_service.current_status(db, user_id)
    if current is None or current.status != StatusValue.ACTIVE:
        logger.info("Connexion refusée : compte non actif (utilisateur %s)", user_id)
        raise AccountNotActive()

    return user_id


def _require_user(db: Session, user_id: uuid.UUID) -> None:
    if db.get(User, user_id) is None:
        raise NotFound(f"Utilisateur {user_id} introuvable.")


def change_status(
    db: Session,
    user_id: uuid.UUID,
    new_status: StatusValue,
    now: datetime,
    reason: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> UserStatus:
    """Ajoute un statut au journal. Aucune règle d'autorisation ici : c'est le rôle de l'appelant."""
    _require_user(db, user_id)
    return status_service.append(db, user_id, new_status, now, reason=reason, actor_id=actor_id)


def can_login(db: Session, user_id: uuid.UUID, now: datetime) -> bool:
    """Statut courant "active" ET compte non verrouillé."""
    credential = credential_service.get_by_user_id(db, user_id)
    if credential is None:
        _require_user(db, user_id)
        return False

    current = status_service.current_status(db, user_id)
    if current is None or current.status != StatusValue.ACTIVE:
        return False
    return not credential_service.is_locked(db, credential.id, now)


def unlock_user(db: Session, user_id: uuid.UUID) -> None:
    """Déverrouillage explicite du compte d'un utilisateur."""
    credential = credential_service.get_by_user_id(db, user_id)
    if credential is None:
        raise NotFound(f"Utilisateur {user_id} introuvable.")
    credential_service.unlock(db, credential.id)
