"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Machine à états post-RDV                                                    ║
║                                                                              ║
║  SEUL CE MODULE modifie lead.status / relance_count / lost_reason            ║
║                                                                              ║
║  RDV_PLANIFIE ──qualify_rdv──> RDV_NON_HONORE | DECISION_EN_ATTENTE | PERDU  ║
║  RDV_NON_HONORE ──handle_non_honore──> RDV_PLANIFIE | DECISION_EN_ATTENTE    ║
║                                        | RDV_NON_HONORE | PERDU              ║
║  PERDU: TERMINAL                                                             ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - validation complète AVANT toute écriture                                  ║
║  - écriture conditionnelle sur (status, relance_count) lus: une commande     ║
║    concurrente perdante obtient InvalidStateError, jamais un écrasement      ║
║  - une entrée d'audit + une note par transition                              ║
║  - recalcul de score en tâche de fond si le statut change                    ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import Any, Dict, Optional

from config import db, now_iso, note_timestamp
from models.lead import (
    CallResult,
    HandleNonHonoreCommand,
    LeadActivityType,
    LeadStatus,
    LostReason,
    NonHonoreAction,
    QualifyRdvCommand,
    RdvIntent,
    TERMINAL_STATUSES,
    validate_non_honore_command,
    validate_qualify_rdv_command,
)
from services.activity_logger import log_lead_activity
from services.errors import InvalidStateError, NotFoundError, UnknownEnumError
from services.lead_scoring import fire_score_refresh

logger = logging.getLogger("rdv_workflow")

MAX_RELANCES = 3

NEXT_STEP_HANDLE_NON_HONORE = "HANDLE_NON_HONORE"
NEXT_STEP_CHOIX_FINANCEMENT = "CHOIX_FINANCEMENT"


# ════════════════════════════════════════════════════════════════════════════
# HELPERS
# ════════════════════════════════════════════════════════════════════════════

def _parse_enum(enum_cls, value: Optional[str], label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise UnknownEnumError(f"{label} inconnu : {value}")


def _with_notes(text: str, notes: Optional[str]) -> str:
    if notes and notes.strip():
        return f"{text} - {notes.strip()}"
    return text


def prepend_note(existing: Optional[str], entry: str) -> str:
    """Nouvelle note horodatée en tête, historique conservé tel quel"""
    stamped = f"[{note_timestamp()}] {entry}"
    return f"{stamped}\n{existing}" if existing else stamped


def _display_name(lead: dict) -> str:
    name = f"{lead.get('nom', '')} {lead.get('prenom', '')}".strip()
    return name or lead["id"]


async def _load_lead(lead_id: str, required_status: LeadStatus) -> dict:
    lead = await db.leads.find_one({"id": lead_id}, {"_id": 0})
    if not lead:
        raise NotFoundError(f"Lead {lead_id} introuvable")

    current = lead.get("status")
    if current in {s.value for s in TERMINAL_STATUSES}:
        raise InvalidStateError(
            f"Lead {lead_id} en statut terminal {current}: aucune transition possible",
            current_status=current,
        )
    if current != required_status.value:
        raise InvalidStateError(
            f"Le lead doit être en statut {required_status.value} (statut actuel : {current})",
            current_status=current,
        )
    return lead


def _plan(
    new_status: LeadStatus,
    activity_type: LeadActivityType,
    note: str,
    message: str,
    relance_count: Optional[int] = None,
    lost_reason: Optional[LostReason] = None,
    date_rdv: Optional[str] = None,
    next_step: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "new_status": new_status,
        "activity_type": activity_type,
        "note": note,
        "message": message,
        "relance_count": relance_count,
        "lost_reason": lost_reason,
        "date_rdv": date_rdv,
        "next_step": next_step,
        "metadata": metadata or {},
    }


async def _commit(lead: dict, expected: LeadStatus, plan: Dict[str, Any], performed_by: str) -> Dict[str, Any]:
    """
    LeadStore.update(lead_id, expected_status, patch) puis audit.
    Filtre sur le statut ET le compteur lus: aucune mise à jour perdue.
    """
    lead_id = lead["id"]
    new_status: LeadStatus = plan["new_status"]
    status_changed = new_status != expected
    relance_count = plan["relance_count"] if plan["relance_count"] is not None else (lead.get("relance_count") or 0)

    patch = {
        "status": new_status.value,
        "relance_count": relance_count,
        "notes": prepend_note(lead.get("notes"), plan["note"]),
        "updated_at": now_iso(),
    }
    if plan["lost_reason"] is not None:
        patch["lost_reason"] = plan["lost_reason"].value
    if plan["date_rdv"] is not None:
        patch["date_rdv"] = plan["date_rdv"]

    result = await db.leads.update_one(
        {"id": lead_id, "status": expected.value, "relance_count": lead.get("relance_count")},
        {"$set": patch}
    )
    if result.matched_count == 0:
        current = await db.leads.find_one({"id": lead_id}, {"_id": 0, "status": 1})
        if not current:
            raise NotFoundError(f"Lead {lead_id} introuvable")
        raise InvalidStateError(
            f"Lead {lead_id} modifié entre-temps (statut actuel : {current.get('status')})",
            current_status=current.get("status"),
        )

    metadata = dict(plan["metadata"])
    metadata["relance_count"] = relance_count
    if plan["lost_reason"] is not None:
        metadata["lost_reason"] = plan["lost_reason"].value

    await log_lead_activity(
        lead_id=lead_id,
        activity_type=plan["activity_type"].value,
        description=plan["note"],
        performed_by=performed_by,
        previous_status=expected.value,
        new_status=new_status.value,
        metadata=metadata,
    )

    if status_changed:
        fire_score_refresh(lead_id, reason=f"{expected.value}->{new_status.value}")

    logger.info(
        f"[RDV_WORKFLOW] Lead {lead_id} {expected.value} -> {new_status.value} | "
        f"relance_count={relance_count} by={performed_by}"
    )

    return {
        "success": True,
        "lead_id": lead_id,
        "previous_status": expected.value,
        "new_status": new_status.value,
        "relance_count": relance_count,
        "lost_reason": plan["lost_reason"].value if plan["lost_reason"] is not None else None,
        "next_step": plan["next_step"],
        "remaining_attempts": plan["metadata"].get("remaining_attempts"),
        "message": plan["message"],
    }


# ════════════════════════════════════════════════════════════════════════════
# COMMANDE 1: qualify_rdv (entrée RDV_PLANIFIE)
# ════════════════════════════════════════════════════════════════════════════

async def qualify_rdv(lead_id: str, command: QualifyRdvCommand) -> Dict[str, Any]:
    """
    Qualifie le résultat d'un RDV planifié.

    honored=False: absence_reason obligatoire -> RDV_NON_HONORE
    honored=True:  intent obligatoire
        reporter   -> DECISION_EN_ATTENTE
        abandon    -> PERDU (non intéressé)
        poursuivre -> statut inchangé, note + audit, next_step CHOIX_FINANCEMENT

    Raises:
        CommandValidationError, NotFoundError, InvalidStateError, UnknownEnumError
    """
    validate_qualify_rdv_command(command)

    lead = await _load_lead(lead_id, LeadStatus.RDV_PLANIFIE)
    name = _display_name(lead)

    if not command.honored:
        reason = command.absence_reason.strip()
        note = _with_notes(f"RDV non honoré. Motif : {reason}", command.notes)
        plan = _plan(
            LeadStatus.RDV_NON_HONORE, LeadActivityType.RDV_NO_SHOW, note,
            message=f"Lead {name} marqué RDV non honoré. Choisissez l'action de suivi.",
            next_step=NEXT_STEP_HANDLE_NON_HONORE,
            metadata={"absence_reason": reason},
        )
        return await _commit(lead, LeadStatus.RDV_PLANIFIE, plan, command.performed_by)

    intent = _parse_enum(RdvIntent, command.intent, "Intent")

    if intent == RdvIntent.REPORTER:
        note = _with_notes("RDV honoré. Décision reportée", command.notes)
        plan = _plan(
            LeadStatus.DECISION_EN_ATTENTE, LeadActivityType.RDV_COMPLETED, note,
            message=f"Lead {name}: décision en attente.",
            metadata={"intent": intent.value},
        )
    elif intent == RdvIntent.ABANDON:
        note = _with_notes("RDV honoré. Prospect non intéressé", command.notes)
        plan = _plan(
            LeadStatus.PERDU, LeadActivityType.STATUS_CHANGE, note,
            message=f"Lead {name} marqué comme perdu (non intéressé).",
            lost_reason=LostReason.NON_INTERESSE,
            metadata={"intent": intent.value},
        )
    elif intent == RdvIntent.POURSUIVRE:
        # Pas de statut intermédiaire: l'étape suivante vit hors de ce module
        note = _with_notes("RDV honoré. Prospect intéressé, passage au choix de financement", command.notes)
        plan = _plan(
            LeadStatus.RDV_PLANIFIE, LeadActivityType.RDV_COMPLETED, note,
            message=f"Lead {name} qualifié positivement. Passage au choix de financement.",
            next_step=NEXT_STEP_CHOIX_FINANCEMENT,
            metadata={"intent": intent.value, "rdv_outcome": "POSITIVE"},
        )
    else:
        raise UnknownEnumError(f"Intent inconnu : {command.intent}")

    return await _commit(lead, LeadStatus.RDV_PLANIFIE, plan, command.performed_by)


# ════════════════════════════════════════════════════════════════════════════
# COMMANDE 2: handle_non_honore (entrée RDV_NON_HONORE)
# ════════════════════════════════════════════════════════════════════════════

def _relance_plan(lead: dict, activity_type: LeadActivityType, label: str, notes: Optional[str],
                  extra: Dict[str, Any]) -> Dict[str, Any]:
    """relance / hors_ligne: +1, PERDU (injoignable) dès MAX_RELANCES"""
    count = (lead.get("relance_count") or 0) + 1
    name = _display_name(lead)

    if count >= MAX_RELANCES:
        note = _with_notes(f"{label} #{count}: maximum atteint ({MAX_RELANCES}), passage en PERDU", notes)
        return _plan(
            LeadStatus.PERDU, activity_type, note,
            message=f"Lead {name}: {MAX_RELANCES} tentatives sans succès. Marqué comme perdu (injoignable).",
            relance_count=count,
            lost_reason=LostReason.INJOIGNABLE,
            metadata={**extra, "max_reached": True, "max_relances": MAX_RELANCES, "remaining_attempts": 0},
        )

    remaining = MAX_RELANCES - count
    note = _with_notes(f"{label} #{count}/{MAX_RELANCES}", notes)
    return _plan(
        LeadStatus.RDV_NON_HONORE, activity_type, note,
        message=f"{label} #{count}/{MAX_RELANCES} enregistrée pour {name}. {remaining} tentative(s) restante(s).",
        relance_count=count,
        metadata={**extra, "max_relances": MAX_RELANCES, "remaining_attempts": remaining},
    )


async def handle_non_honore(lead_id: str, command: HandleNonHonoreCommand) -> Dict[str, Any]:
    """
    Suivi après un RDV non honoré.

    action=relance: relance_count+1, PERDU (injoignable) si >= MAX_RELANCES
    action=call + call_result:
        rdv_refixe      -> RDV_PLANIFIE, date_rdv, relance_count remis à 0
        interesse       -> relance_count+1, DECISION_EN_ATTENTE (pas de plafond)
        hors_ligne      -> comme relance
        pas_interesse   -> PERDU (non intéressé)
        numero_invalide -> PERDU (numéro invalide)

    Raises:
        CommandValidationError, NotFoundError, InvalidStateError, UnknownEnumError
    """
    validate_non_honore_command(command)

    lead = await _load_lead(lead_id, LeadStatus.RDV_NON_HONORE)
    name = _display_name(lead)
    action = _parse_enum(NonHonoreAction, command.action, "Action")

    if action == NonHonoreAction.RELANCE:
        plan = _relance_plan(lead, LeadActivityType.RELANCE, "Relance", command.notes, {"action": action.value})
        return await _commit(lead, LeadStatus.RDV_NON_HONORE, plan, command.performed_by)

    if action != NonHonoreAction.CALL:
        raise UnknownEnumError(f"Action inconnue : {command.action}")

    call_result = _parse_enum(CallResult, command.call_result, "Résultat d'appel")
    extra = {"action": action.value, "call_result": call_result.value}

    if call_result == CallResult.RDV_REFIXE:
        note = _with_notes(f"Appel: nouveau RDV fixé au {command.new_date}", command.notes)
        plan = _plan(
            LeadStatus.RDV_PLANIFIE, LeadActivityType.RDV_BOOKED, note,
            message=f"Nouveau RDV planifié pour {name}.",
            relance_count=0,
            date_rdv=command.new_date,
            metadata={**extra, "new_date_rdv": command.new_date, "relance_count_reset": True},
        )
    elif call_result == CallResult.INTERESSE:
        count = (lead.get("relance_count") or 0) + 1
        metadata = {**extra}
        if count >= MAX_RELANCES:
            # Pas de plafond sur ce chemin: dépassement signalé dans le journal
            logger.warning(
                f"[RDV_WORKFLOW] Lead {lead_id}: relance_count={count} >= {MAX_RELANCES} "
                f"sur 'interesse', plafond non appliqué"
            )
            metadata["relance_cap_exceeded"] = True
        note = _with_notes(f"Appel: intéressé, décision en attente (relance #{count})", command.notes)
        plan = _plan(
            LeadStatus.DECISION_EN_ATTENTE, LeadActivityType.CALL_OUTBOUND, note,
            message=f"{name} intéressé: en attente de décision.",
            relance_count=count,
            metadata=metadata,
        )
    elif call_result == CallResult.HORS_LIGNE:
        plan = _relance_plan(lead, LeadActivityType.CALL_NO_ANSWER, "Appel hors ligne", command.notes, extra)
    elif call_result == CallResult.PAS_INTERESSE:
        note = _with_notes("Appel: pas intéressé", command.notes)
        plan = _plan(
            LeadStatus.PERDU, LeadActivityType.CALL_OUTBOUND, note,
            message=f"{name} marqué comme perdu (non intéressé).",
            lost_reason=LostReason.NON_INTERESSE,
            metadata=extra,
        )
    elif call_result == CallResult.NUMERO_INVALIDE:
        note = _with_notes("Appel: numéro invalide", command.notes)
        plan = _plan(
            LeadStatus.PERDU, LeadActivityType.CALL_OUTBOUND, note,
            message=f"{name} marqué comme perdu (numéro invalide).",
            lost_reason=LostReason.NUMERO_INVALIDE,
            metadata=extra,
        )
    else:
        raise UnknownEnumError(f"Résultat d'appel inconnu : {command.call_result}")

    return await _commit(lead, LeadStatus.RDV_NON_HONORE, plan, command.performed_by)
