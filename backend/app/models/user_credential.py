"""
Modèle SQLAlchemy pour les identifiants de connexion (1-1 avec User).
Porte aussi l'état du verrouillage anti brute-force.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid, func

from app.database import Base


class UserCredential(Base):
    __tablename__ = "user_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    email = Column(String(255), unique=True, nullable=False)  # comparaison exacte, sensible à la casse
    password_hash = Column(String(255), nullable=False)       # bcrypt, jamais le mot de passe en clair
    failed_login_attempts = Column(Integer, nullable=False, default=0, server_default="0")
    locked_until = Column(DateTime, nullable=True)            # NULL = non verrouillé
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
