"""
Erreurs métier du cycle de vie des comptes utilisateurs.

Les routers traduisent ces exceptions en codes HTTP :
ValidationError → 422, InvalidCredentials → 401, AccountNotActive → 403, NotFound → 404.
ImmutableRecordError n'est jamais interceptée par un router : c'est une erreur
d'intégration, elle remonte jusqu'au handler global (500).
"""

from typing import Iterable


class ValidationError(ValueError):
    """Données d'entrée invalides. Contient TOUS les messages, pas seulement le premier."""

    def __init__(self, messages: Iterable[str]):
        self.messages = list(messages)
        super().__init__("; ".join(self.messages))


class InvalidCredentials(Exception):
    """Email inconnu, mauvais mot de passe ou compte verrouillé (volontairement indiscernables)."""

    def __init__(self):
        super().__init__("Identifiants invalides.")


class AccountNotActive(Exception):
    """Mot de passe correct, mais le compte est suspendu ou supprimé."""

    def __init__(self):
        super().__init__("Le compte est suspendu ou supprimé.")


class ImmutableRecordError(RuntimeError):
    """Tentative de modification ou de suppression d'un enregistrement du journal des statuts."""


class NotFound(LookupError):
    """Opération adressée à un identifiant inexistant."""
