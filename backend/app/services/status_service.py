"""
Journal des statuts utilisateur (append-only).

Ce module n'expose volontairement aucune fonction de modification ou de suppression :
un changement de statut est toujours une nouvelle ligne. Le statut courant est
la dernière ligne ajoutée (id le plus élevé), pas celle dont effective_at est le
plus récent.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.user import User
from app.models.user_status import StatusValue, UserStatus

logger = logging.getLogger(__name__)

INITIAL_REASON = "Initial status"


def append_initial(
    db: Session, user_id: uuid.UUID, now: datetime, actor_id: Optional[uuid.UUID] = None
) -> UserStatus:
    """
    Ajoute le statut initial "active" d'un utilisateur en cours de création.
    Ne commit pas : l'appelant (inscription) valide la transaction en une seule fois.
    """
    record = UserStatus(
        user_id=user_id,
        status=StatusValue.ACTIVE,
        reason=INITIAL_REASON,
        changed_by_user_id=actor_id,
        effective_at=now,
    )
    db.add(record)
    db.flush()  # Obtenir l'ID avant le commit
    return record


def append(
    db: Session,
    user_id: uuid.UUID,
    new_status: StatusValue,
    now: datetime,
    reason: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> UserStatus:
    """
    Ajoute un nouveau statut au journal. Les lignes existantes ne sont jamais touchées ;
    deux statuts identiques consécutifs sont autorisés.
    """
    record = UserStatus(
        user_id=user_id,
        status=StatusValue(new_status),
        reason=reason,
        changed_by_user_id=actor_id,
        effective_at=now,
    )
    db.add(record)
    db.commit()
    db.refresh(record)

    logger.info(
        "Statut de l'utilisateur %s → %s (par %s, motif : %s)",
        user_id, record.status.value, actor_id, reason,
    )
    return record


def current_status(db: Session, user_id: uuid.UUID) -> Optional[UserStatus]:
    """Dernière ligne ajoutée pour cet utilisateur, ou None si le journal est vide."""
    return db.execute(
        select(UserStatus)
        .where(UserStatus.user_id == user_id)
        .order_by(UserStatus.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def history(db: Session, user_id: uuid.UUID) -> List[UserStatus]:
    """Historique complet, du plus récent au plus ancien (ordre du journal)."""
    return list(
        db.execute(
            select(UserStatus)
            .where(UserStatus.user_id == user_id)
            .order_by(UserStatus.id.desc())
        ).scalars().all()
    )


def current_status_ids():
    """Sous-requête : id de la ligne courante de chaque utilisateur (MAX(id) par user_id)."""
    return select(func.max(UserStatus.id)).group_by(UserStatus.user_id)


def filter_by_status(query, status: Optional[StatusValue]):
    """
    Restreint une requête sur User aux utilisateurs dont le statut COURANT vaut `status`.
    Retourne la requête inchangée si aucun statut n'est demandé.
    """
    if status is None:
        return query
    return (
        query.join(UserStatus, UserStatus.user_id == User.id)
        .where(UserStatus.id.in_(current_status_ids()))
        .where(UserStatus.status == StatusValue(status))
    )
