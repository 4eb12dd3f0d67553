"""
Tests unitaires pour le journal des statuts (append-only).
Vérifie l'ordre du journal et l'immutabilité à chaque niveau (ORM, session, triggers).
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import delete, select, text, update

from app.exceptions import ImmutableRecordError
from app.models.user import User
from app.models.user_status import StatusValue, UserStatus
from app.services import status_service

T0 = datetime(2025, 1, 1, 12, 0, 0)


# --- Helpers ---

def make_user_with_initial_status(db, now=T0):
    user = User()
    db.add(user)
    db.flush()
    status_service.append_initial(db, user.id, now)
    db.commit()
    return user.id


def snapshot(db, user_id):
    db.expire_all()
    return [
        (r.id, r.status, r.reason, r.changed_by_user_id, r.effective_at)
        for r in status_service.history(db, user_id)
    ]


# --- Ajout ---

def test_statut_initial(db):
    user_id = make_user_with_initial_status(db)
    current = status_service.current_status(db, user_id)
    assert current.status == StatusValue.ACTIVE
    assert current.reason == "Initial status"
    assert current.effective_at == T0
    assert current.changed_by_user_id is None


def test_statut_initial_avec_auteur(db):
    actor_id = make_user_with_initial_status(db)
    user = User()
    db.add(user)
    db.flush()
    record = status_service.append_initial(db, user.id, T0, actor_id=actor_id)
    db.commit()
    assert record.changed_by_user_id == actor_id


def test_append_ajoute_une_ligne(db):
    user_id = make_user_with_initial_status(db)
    actor_id = make_user_with_initial_status(db)

    record = status_service.append(
        db, user_id, StatusValue.SUSPENDED, T0 + timedelta(hours=1),
        reason="Spam", actor_id=actor_id,
    )

    assert record.status == StatusValue.SUSPENDED
    assert record.reason == "Spam"
    assert record.changed_by_user_id == actor_id
    assert status_service.current_status(db, user_id).id == record.id
    assert len(status_service.history(db, user_id)) == 2


def test_append_accepte_la_valeur_texte(db):
    user_id = make_user_with_initial_status(db)
    record = status_service.append(db, user_id, "deleted", T0)
    assert record.status == StatusValue.DELETED
    assert record.status == "deleted"


def test_auteur_peut_etre_le_sujet(db):
    user_id = make_user_with_initial_status(db)
    record = status_service.append(db, user_id, StatusValue.DELETED, T0, actor_id=user_id)
    assert record.changed_by_user_id == user_id


def test_statuts_identiques_consecutifs_autorises(db):
    user_id = make_user_with_initial_status(db)
    status_service.append(db, user_id, StatusValue.SUSPENDED, T0 + timedelta(minutes=1))
    status_service.append(db, user_id, StatusValue.SUSPENDED, T0 + timedelta(minutes=2))
    statuses = [r.status for r in status_service.history(db, user_id)]
    assert statuses == [StatusValue.SUSPENDED, StatusValue.SUSPENDED, StatusValue.ACTIVE]


def test_historique_croit_de_un_par_ajout_sans_modifier_l_existant(db):
    user_id = make_user_with_initial_status(db)
    before = snapshot(db, user_id)

    for i, status in enumerate([StatusValue.SUSPENDED, StatusValue.ACTIVE, StatusValue.DELETED], start=1):
        status_service.append(db, user_id, status, T0 + timedelta(minutes=i))
        after = snapshot(db, user_id)
        assert len(after) == len(before) + 1
        assert after[1:] == before  # les entrées existantes sont intactes
        before = after


def test_historique_du_plus_recent_au_plus_ancien(db):
    user_id = make_user_with_initial_status(db)
    for i in range(1, 4):
        status_service.append(db, user_id, StatusValue.SUSPENDED, T0 + timedelta(minutes=i))

    records = status_service.history(db, user_id)
    times = [r.effective_at for r in records]
    assert times == sorted(times, reverse=True)
    ids = [r.id for r in records]
    assert ids == sorted(ids, reverse=True)


def test_statut_courant_ordre_du_journal_pas_effective_at(db):
    """Une ligne ajoutée en dernier est courante même si son effective_at est plus ancien."""
    user_id = make_user_with_initial_status(db, now=T0)
    status_service.append(db, user_id, StatusValue.SUSPENDED, T0 + timedelta(days=1))
    late = status_service.append(db, user_id, StatusValue.ACTIVE, T0 - timedelta(days=1))

    assert status_service.current_status(db, user_id).id == late.id
    assert status_service.current_status(db, user_id).status == StatusValue.ACTIVE


def test_journal_vide(db):
    user = User()
    db.add(user)
    db.commit()
    assert status_service.current_status(db, user.id) is None
    assert status_service.history(db, user.id) == []


def test_journaux_independants_par_utilisateur(db):
    alice = make_user_with_initial_status(db)
    bob = make_user_with_initial_status(db)
    status_service.append(db, bob, StatusValue.SUSPENDED, T0)
    assert status_service.current_status(db, alice).status == StatusValue.ACTIVE
    assert len(status_service.history(db, alice)) == 1


# --- Immutabilité ---

def test_modification_attribut_refusee(db):
    user_id = make_user_with_initial_status(db)
    record = status_service.current_status(db, user_id)
    before = snapshot(db, user_id)

    record.reason = "Réécriture"
    with pytest.raises(ImmutableRecordError):
        db.commit()
    db.rollback()

    assert snapshot(db, user_id) == before


def test_changement_de_statut_par_mutation_refuse(db):
    user_id = make_user_with_initial_status(db)
    record = status_service.current_status(db, user_id)

    record.status = StatusValue.SUSPENDED
    with pytest.raises(ImmutableRecordError):
        db.flush()
    db.rollback()

    assert status_service.current_status(db, user_id).status == StatusValue.ACTIVE


def test_ligne_juste_creee_immuable(db):
    user_id = make_user_with_initial_status(db)
    record = status_service.append(db, user_id, StatusValue.SUSPENDED, T0)

    record.effective_at = T0 - timedelta(days=365)
    with pytest.raises(ImmutableRecordError):
        db.commit()
    db.rollback()


def test_suppression_orm_refusee(db):
    user_id = make_user_with_initial_status(db)
    record = status_service.current_status(db, user_id)

    db.delete(record)
    with pytest.raises(ImmutableRecordError):
        db.commit()
    db.rollback()

    assert len(status_service.history(db, user_id)) == 1


def test_update_en_masse_refuse(db):
    user_id = make_user_with_initial_status(db)
    with pytest.raises(ImmutableRecordError):
        db.execute(update(UserStatus).where(UserStatus.user_id == user_id).values(reason="x"))
    db.rollback()


def test_delete_en_masse_refuse(db):
    user_id = make_user_with_initial_status(db)
    with pytest.raises(ImmutableRecordError):
        db.execute(delete(UserStatus).where(UserStatus.user_id == user_id))
    db.rollback()
    assert len(status_service.history(db, user_id)) == 1


def test_update_sql_brut_refuse_par_trigger(db):
    """Même en contournant l'ORM, la base refuse la modification."""
    user_id = make_user_with_initial_status(db)
    before = snapshot(db, user_id)

    with pytest.raises(ImmutableRecordError):
        db.execute(text("UPDATE user_statuses SET reason = 'x'"))
    db.rollback()

    assert snapshot(db, user_id) == before


def test_delete_sql_brut_refuse_par_trigger(db):
    user_id = make_user_with_initial_status(db)

    with pytest.raises(ImmutableRecordError):
        db.execute(text("DELETE FROM user_statuses"))
    db.rollback()

    assert len(status_service.history(db, user_id)) == 1


def test_suppression_utilisateur_cascade_sur_le_journal(db):
    """Seule exception : la cascade quand l'utilisateur lui-même est supprimé."""
    user_id = make_user_with_initial_status(db)
    status_service.append(db, user_id, StatusValue.SUSPENDED, T0)

    db.execute(delete(User).where(User.id == user_id))
    db.commit()

    remaining = db.execute(select(UserStatus).where(UserStatus.user_id == user_id)).scalars().all()
    assert remaining == []


# --- Filtre par statut courant ---

def test_filtre_statut_absent_requete_inchangee():
    query = select(User)
    assert status_service.filter_by_status(query, None) is query


def test_filtre_par_statut_courant(db):
    active = make_user_with_initial_status(db)
    suspended = make_user_with_initial_status(db)
    status_service.append(db, suspended, StatusValue.SUSPENDED, T0)
    reactivated = make_user_with_initial_status(db)
    status_service.append(db, reactivated, StatusValue.SUSPENDED, T0)
    status_service.append(db, reactivated, StatusValue.ACTIVE, T0)

    def ids_for(status):
        query = status_service.filter_by_status(select(User.id), status)
        return set(db.execute(query).scalars().all())

    assert ids_for(StatusValue.ACTIVE) == {active, reactivated}
    assert ids_for(StatusValue.SUSPENDED) == {suspended}
    assert ids_for(StatusValue.DELETED) == set()
