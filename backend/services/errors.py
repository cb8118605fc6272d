"""
Erreurs métier du module de qualification.

Toutes héritent de QualificationError. Les erreurs du driver Mongo ne sont
pas enveloppées: StorageError est l'alias de PyMongoError et remonte telle quelle.
"""

from typing import Optional
from pymongo.errors import PyMongoError


class QualificationError(Exception):
    """Base des erreurs métier"""
    pass


class CommandValidationError(QualificationError):
    """Commande incomplète ou mal formée (levée avant toute mutation)"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(QualificationError):
    """Script, nœud, exécution ou lead introuvable"""
    pass


class InvalidStateError(QualificationError):
    """Statut d'entrée incorrect, ou écriture concurrente perdue"""

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class UnknownEnumError(QualificationError):
    """Valeur d'intent / action / résultat d'appel non reconnue"""
    pass


StorageError = PyMongoError
