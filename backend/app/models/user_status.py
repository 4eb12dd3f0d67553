"""
Modèle SQLAlchemy pour le journal des statuts utilisateur (append-only).

Chaque changement de statut ajoute une ligne ; une ligne existante n'est jamais
modifiée ni supprimée. Le statut courant est la ligne d'id le plus élevé.

L'immutabilité est garantie à trois niveaux :
1. ORM : les événements before_update / before_delete lèvent ImmutableRecordError
2. Session : les UPDATE / DELETE en masse visant user_statuses sont refusés
3. Base de données : triggers SQLite / PostgreSQL (résiste aux requêtes SQL brutes)

Seule exception : la suppression en cascade quand l'utilisateur lui-même est supprimé.
"""

import enum

from sqlalchemy import DDL, Column, DateTime, Enum, ForeignKey, Index, Integer, Text, Uuid, event, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from app.database import Base
from app.exceptions import ImmutableRecordError

IMMUTABLE_MESSAGE = "user_statuses records are immutable"


class StatusValue(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class UserStatus(Base):
    __tablename__ = "user_statuses"

    id = Column(Integer, primary_key=True, autoincrement=True)  # ordre du journal
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        Enum(
            StatusValue,
            name="user_status_value",
            native_enum=False,
            create_constraint=True,
            length=20,
            values_callable=lambda values: [v.value for v in values],
        ),
        nullable=False,
    )
    reason = Column(Text, nullable=True)
    # Pas de clé étrangère : supprimer l'auteur ne doit pas réécrire le journal des autres
    changed_by_user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    effective_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_user_statuses_user_id_effective_at", "user_id", "effective_at"),
    )


# --- Niveau ORM ---

@event.listens_for(UserStatus, "before_update")
def _prevent_update(mapper, connection, target):
    raise ImmutableRecordError(f"{IMMUTABLE_MESSAGE}: update of record {target.id} refused")


@event.listens_for(UserStatus, "before_delete")
def _prevent_delete(mapper, connection, target):
    raise ImmutableRecordError(f"{IMMUTABLE_MESSAGE}: delete of record {target.id} refused")


@event.listens_for(Session, "do_orm_execute")
def _prevent_bulk_writes(orm_execute_state):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    if any(mapper.class_ is UserStatus for mapper in orm_execute_state.all_mappers):
        raise ImmutableRecordError(f"{IMMUTABLE_MESSAGE}: bulk write refused")


# --- Niveau base de données ---

event.listen(
    UserStatus.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER user_statuses_no_update BEFORE UPDATE ON user_statuses "
        f"BEGIN SELECT RAISE(ABORT, '{IMMUTABLE_MESSAGE}'); END"
    ).execute_if(dialect="sqlite"),
)

# Pendant un ON DELETE CASCADE la ligne users est déjà supprimée : la cascade passe
event.listen(
    UserStatus.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER user_statuses_no_delete BEFORE DELETE ON user_statuses "
        "WHEN EXISTS (SELECT 1 FROM users WHERE users.id = OLD.user_id) "
        f"BEGIN SELECT RAISE(ABORT, '{IMMUTABLE_MESSAGE}'); END"
    ).execute_if(dialect="sqlite"),
)

event.listen(
    UserStatus.__table__,
    "after_create",
    DDL(
        "CREATE OR REPLACE FUNCTION user_statuses_immutable() RETURNS trigger AS $$\n"
        "BEGIN\n"
        "    IF TG_OP = 'DELETE' AND NOT EXISTS (SELECT 1 FROM users WHERE users.id = OLD.user_id) THEN\n"
        "        RETURN OLD;\n"
        "    END IF;\n"
        f"    RAISE EXCEPTION '{IMMUTABLE_MESSAGE}';\n"
        "END;\n"
        "$$ LANGUAGE plpgsql"
    ).execute_if(dialect="postgresql"),
)

event.listen(
    UserStatus.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER user_statuses_immutable BEFORE UPDATE OR DELETE ON user_statuses "
        "FOR EACH ROW EXECUTE FUNCTION user_statuses_immutable()"
    ).execute_if(dialect="postgresql"),
)


@event.listens_for(Engine, "handle_error")
def _translate_trigger_violation(context):
    """Convertit l'erreur levée par les triggers en ImmutableRecordError."""
    if IMMUTABLE_MESSAGE in str(context.original_exception):
        raise ImmutableRecordError(str(context.original_exception)) from context.original_exception
