# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.
# users doit précéder les tables qui y font référence.

from app.models.user import User, UserProfile  # noqa: F401
from app.models.user_credential import UserCredential  # noqa: F401
from app.models.user_status import StatusValue, UserStatus  # noqa: F401
