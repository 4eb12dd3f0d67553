"""
Router d'authentification : inscription, connexion, déconnexion, profil courant.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from app.clock import utcnow
from app.database import get_db
from app.dependencies import get_current_user_id
from app.exceptions import AccountNotActive, InvalidCredentials, ValidationError
from app.schemas.auth import AuthResponse, LoginRequest, SignupRequest
from app.schemas.user import UserEnvelope
from app.services import auth_service, token_service, user_service

router = APIRouter(prefix="/api/v1/auth", tags=["Authentification"])


@router.post("/signup", response_model=AuthResponse, status_code=201, summary="Créer un compte")
def signup(data: SignupRequest, db: Session = Depends(get_db)):
    """
    Crée un utilisateur (identifiants + profil + statut initial "active") et retourne
    un jeton d'accès. Toutes les erreurs de validation sont renvoyées en une fois (422).
    """
    try:
        user_id = auth_service.signup(
            db,
            data.email,
            data.password,
            data.profile_attrs(),
            utcnow(),
            password_confirmation=data.password_confirmation,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.messages)

    return AuthResponse(token=token_service.issue_token(user_id), user=user_service.get_user(db, user_id))


@router.post("/login", response_model=AuthResponse, summary="Se connecter")
def login(data: LoginRequest, db: Session = Depends(get_db)):
    """
    Vérifie email + mot de passe.
    - 401 : email inconnu, mauvais mot de passe ou compte verrouillé (réponse identique)
    - 403 : mot de passe correct mais compte suspendu ou supprimé
    """
    try:
        user_id = auth_service.login(db, data.email, data.password, utcnow())
    except InvalidCredentials as e:
        raise HTTPException(status_code=401, detail=str(e))
    except AccountNotActive as e:
        raise HTTPException(status_code=403, detail=str(e))

    return AuthResponse(token=token_service.issue_token(user_id), user=user_service.get_user(db, user_id))


@router.delete(
    "/logout",
    status_code=204,
    dependencies=[Depends(get_current_user_id)],
    summary="Se déconnecter",
)
def logout():
    """Jetons sans état : le client oublie son jeton, le serveur n'a rien à révoquer."""
    return Response(status_code=204)


@router.get("/me", response_model=UserEnvelope, summary="Utilisateur courant")
def me(user_id: uuid.UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    user = user_service.get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Authentification requise.")
    return UserEnvelope(user=user)
