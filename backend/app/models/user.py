"""
Modèles SQLAlchemy pour les utilisateurs et leur profil public.
L'identité (User) ne porte aucune donnée : email/mot de passe vivent dans
user_credentials, le statut dans le journal user_statuses.
"""

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, Uuid, func

from app.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class UserProfile(Base):
    """Profil public (1-1 avec User)."""
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    username = Column(String(50), nullable=False)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String(255), nullable=True)
    website_url = Column(String(255), nullable=True)
    birth_date = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def age(self, today: Optional[date] = None) -> Optional[int]:
        """Âge en années révolues, ou None si la date de naissance n'est pas renseignée."""
        if self.birth_date is None:
            return None
        today = today or date.today()
        years = today.year - self.birth_date.year
        if (today.month, today.day) < (self.birth_date.month, self.birth_date.day):
            years -= 1
        return years
