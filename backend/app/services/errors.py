"""
Erreurs métier du moteur de formulaires dynamiques.
Chaque erreur porte le code HTTP sous lequel elle est exposée par l'API.
"""

from typing import Optional


class RosterError(ValueError):
    status_code = 400

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidIdentifier(RosterError):
    """Nom de schéma, table ou colonne refusé par l'assainisseur."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Identifiant invalide : '{name}'", details=reason)
        self.name = name


class InvalidField(RosterError):
    """Valeur, colonne ou fichier refusé avant toute écriture."""


class AlreadyExists(RosterError):
    pass


class NotFound(RosterError):
    status_code = 404


class StorageFailure(RosterError):
    status_code = 500
