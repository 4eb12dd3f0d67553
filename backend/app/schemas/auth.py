"""
Schémas Pydantic pour l'inscription et la connexion.
"""

from typing import Optional

from pydantic import BaseModel

from app.schemas.user import UserResponse


class SignupRequest(BaseModel):
    """
    Inscription (POST /auth/signup).
    Tous les champs sont optionnels ici : le service vérifie les identifiants ET le
    profil et renvoie la liste complète des erreurs en une seule réponse 422.
    """
    email: Optional[str] = None
    password: Optional[str] = None
    password_confirmation: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None

    def profile_attrs(self) -> dict:
        return {"username": self.username, "bio": self.bio}


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(BaseModel):
    token: str
    user: UserResponse
