"""
Recalcul du score lead (tâche de fond, best effort)

Déclenché APRÈS une transition de statut ou la fin d'un script.
FIRE-AND-FORGET: l'appelant n'attend jamais, une erreur est loguée et
consignée dans score_refresh_failures, jamais propagée ni rejouée ici.
"""

import asyncio
import logging
import uuid
from typing import Optional, Set

from config import db, now_iso, SCORE_REFRESH_ENABLED
from models.lead import LeadStatus

logger = logging.getLogger("lead_scoring")

# Barème A/B/C/D
GRADE_THRESHOLDS = [(80, "A"), (60, "B"), (40, "C")]

_pending: Set[asyncio.Task] = set()


def grade_for(score: int) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "D"


async def refresh_lead_score(lead_id: str) -> Optional[dict]:
    """
    score = score_percentage de la dernière exécution terminée (0 si aucune)
    Un lead PERDU est toujours noté D.
    """
    lead = await db.leads.find_one({"id": lead_id}, {"_id": 0, "id": 1, "status": 1})
    if not lead:
        logger.warning(f"[SCORE_REFRESH] Lead {lead_id} introuvable")
        return None

    executions = await db.script_executions.find(
        {"lead_id": lead_id, "completed_at": {"$ne": None}},
        {"_id": 0, "score_percentage": 1, "completed_at": 1}
    ).sort("completed_at", -1).to_list(1)

    score = 0
    if executions:
        score = executions[0].get("score_percentage") or 0
    grade = "D" if lead.get("status") == LeadStatus.PERDU.value else grade_for(score)

    update = {"score": score, "score_grade": grade, "score_updated_at": now_iso()}
    await db.leads.update_one({"id": lead_id}, {"$set": update})

    logger.info(f"[SCORE_REFRESH] Lead {lead_id} -> score={score} grade={grade}")
    return update


async def _run_refresh(lead_id: str, reason: str):
    try:
        await refresh_lead_score(lead_id)
    except Exception as e:
        logger.error(f"[SCORE_REFRESH] Échec pour lead {lead_id} ({reason}): {str(e)}")
        try:
            await db.score_refresh_failures.insert_one({
                "id": str(uuid.uuid4()),
                "lead_id": lead_id,
                "reason": reason,
                "error": str(e),
                "created_at": now_iso()
            })
        except Exception as dead_letter_error:
            logger.error(f"[SCORE_REFRESH] Dead-letter impossible pour lead {lead_id}: {str(dead_letter_error)}")


def fire_score_refresh(lead_id: str, reason: str = "status_change") -> Optional[asyncio.Task]:
    """
    Planifie le recalcul sans l'attendre.
    Doit être appelé depuis une boucle asyncio en cours (route / service async).
    """
    if not SCORE_REFRESH_ENABLED:
        return None

    task = asyncio.get_running_loop().create_task(_run_refresh(lead_id, reason))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def wait_for_pending_refreshes(timeout: float = 10.0):
    """Attend les recalculs en vol (arrêt du serveur, tests)"""
    loop = asyncio.get_running_loop()
    tasks = {t for t in _pending if t.get_loop() is loop}
    if not tasks:
        return
    done, not_done = await asyncio.wait(tasks, timeout=timeout)
    if not_done:
        logger.warning(f"[SCORE_REFRESH] {len(not_done)} recalcul(s) encore en cours à l'arrêt")
