"""
Horloge de l'application.
Les services reçoivent toujours `now` en paramètre ; seuls les routers lisent l'horloge.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Instant courant en UTC, sans tzinfo (format stocké en base)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
