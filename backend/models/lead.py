"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Modèle Lead - Workflow post-RDV                                             ║
║                                                                              ║
║  RÈGLES FONDAMENTALES:                                                       ║
║  1. PERDU est TERMINAL: aucune commande ne l'accepte en entrée               ║
║  2. lost_reason n'est renseigné que si status = PERDU                        ║
║  3. relance_count ne revient à 0 que lorsqu'un nouveau RDV est fixé          ║
║  4. Les notes sont préfixées (plus récente en haut), jamais réécrites        ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from enum import Enum

from services.errors import CommandValidationError


class LeadStatus(str, Enum):
    """Statuts gérés par la machine à états post-RDV"""
    RDV_PLANIFIE = "RDV_PLANIFIE"
    RDV_NON_HONORE = "RDV_NON_HONORE"
    DECISION_EN_ATTENTE = "DECISION_EN_ATTENTE"
    PERDU = "PERDU"                 # TERMINAL


TERMINAL_STATUSES = {LeadStatus.PERDU}


class RdvIntent(str, Enum):
    POURSUIVRE = "poursuivre"
    REPORTER = "reporter"
    ABANDON = "abandon"


class NonHonoreAction(str, Enum):
    CALL = "call"
    RELANCE = "relance"


class CallResult(str, Enum):
    RDV_REFIXE = "rdv_refixe"
    INTERESSE = "interesse"
    HORS_LIGNE = "hors_ligne"
    PAS_INTERESSE = "pas_interesse"
    NUMERO_INVALIDE = "numero_invalide"


class LostReason(str, Enum):
    NON_INTERESSE = "non intéressé"
    INJOIGNABLE = "injoignable"
    NUMERO_INVALIDE = "numéro invalide"


class LeadActivityType(str, Enum):
    RDV_NO_SHOW = "RDV_NO_SHOW"
    RDV_COMPLETED = "RDV_COMPLETED"
    RDV_BOOKED = "RDV_BOOKED"
    STATUS_CHANGE = "STATUS_CHANGE"
    RELANCE = "RELANCE"
    CALL_OUTBOUND = "CALL_OUTBOUND"
    CALL_NO_ANSWER = "CALL_NO_ANSWER"


# ==================== COMMANDES ====================

class QualifyRdvCommand(BaseModel):
    """
    Qualification d'un RDV planifié.
    Les valeurs restent des str: la machine à états rejette elle-même
    les intents inconnus (UnknownEnumError).
    """
    honored: bool
    absence_reason: Optional[str] = None
    intent: Optional[str] = None
    notes: Optional[str] = None
    performed_by: str = Field(..., min_length=1)


class HandleNonHonoreCommand(BaseModel):
    """Action de suivi après un RDV non honoré"""
    action: str
    call_result: Optional[str] = None
    new_date: Optional[str] = None
    notes: Optional[str] = None
    performed_by: str = Field(..., min_length=1)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_qualify_rdv_command(command: QualifyRdvCommand) -> None:
    """
    Combinaisons obligatoires:
    - honored=False => absence_reason non vide
    - honored=True  => intent renseigné
    """
    if _is_blank(command.performed_by):
        raise CommandValidationError("performed_by requis", field="performed_by")

    if not command.honored and _is_blank(command.absence_reason):
        raise CommandValidationError(
            "La raison d'absence est obligatoire si le RDV n'a pas été honoré",
            field="absence_reason",
        )

    if command.honored and _is_blank(command.intent):
        raise CommandValidationError(
            "L'intention est obligatoire si le RDV a été honoré",
            field="intent",
        )


def validate_non_honore_command(command: HandleNonHonoreCommand) -> None:
    """
    Combinaisons obligatoires:
    - action=call          => call_result renseigné
    - call_result=rdv_refixe => new_date renseignée (ISO 8601)
    - notes toujours renseignées
    """
    if _is_blank(command.performed_by):
        raise CommandValidationError("performed_by requis", field="performed_by")

    if _is_blank(command.action):
        raise CommandValidationError("action requise", field="action")

    if _is_blank(command.notes):
        raise CommandValidationError("Les notes sont obligatoires", field="notes")

    if command.action == NonHonoreAction.CALL.value and _is_blank(command.call_result):
        raise CommandValidationError("Le résultat de l'appel est obligatoire", field="call_result")

    if command.call_result == CallResult.RDV_REFIXE.value:
        if _is_blank(command.new_date):
            raise CommandValidationError("La date du nouveau RDV est obligatoire", field="new_date")
        try:
            datetime.fromisoformat(command.new_date.replace("Z", "+00:00"))
        except ValueError:
            raise CommandValidationError(
                f"Date de RDV invalide: {command.new_date}", field="new_date"
            )
