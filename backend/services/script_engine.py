"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Moteur d'exécution des scripts de qualification                             ║
║                                                                              ║
║  - start_execution: crée une exécution, renvoie le nœud racine               ║
║  - answer_node: score la réponse, l'enregistre, avance ou termine            ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - max_possible_score = somme des poids positifs, calculé une seule fois     ║
║  - total_score ne décroît jamais et ne dépasse jamais max_possible_score     ║
║  - script_responses: une ligne par rang (execution_id, seq), jamais modifiée ║
║    une ligne n'est retirée que si son rang n'a pas été validé                ║
║  - une exécution terminée est figée (completed_at non null), et le figement  ║
║    se fait dans la même écriture que la dernière réponse                     ║
║  - chaque réponse réserve son rang (index unique) puis valide l'exécution    ║
║    par une mise à jour conditionnelle sur answered_count                     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import re
import uuid
from typing import List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from config import db, now_iso, round_half_up
from models.script import (
    ActionTrigger,
    ExecutionState,
    HistoryEntry,
    NodeType,
    ScriptDefinition,
    ScriptNode,
)
from services.errors import InvalidStateError, NotFoundError
from services.lead_scoring import fire_score_refresh
from services.recommendation import generate_recommendation
from services.script_catalog import get_default_script, get_script_with_nodes, seed_default_scripts

logger = logging.getLogger("script_engine")

NO_SCRIPT_RECOMMENDATION = "Aucun script configuré"
RATING_SCALE = 5

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


# ════════════════════════════════════════════════════════════════════════════
# RÈGLES DE SCORING / ROUTAGE (pures)
# ════════════════════════════════════════════════════════════════════════════

def _is_yes(answer: str) -> bool:
    return answer.lower() == "oui"


def _is_no(answer: str) -> bool:
    return answer.lower() == "non"


def _matching_option(node: ScriptNode, answer: str):
    for option in node.options or []:
        if option.value == answer:
            return option
    return None


def parse_rating(answer: str) -> int:
    """Entier en tête de réponse ("4", "4/5", " 3 étoiles"), 0 sinon"""
    match = _LEADING_INT.match(answer or "")
    if not match:
        return 0
    return int(match.group(1))


def max_possible_score(nodes: List[ScriptNode]) -> int:
    return sum(max(0, n.score_weight) for n in nodes)


def calculate_node_score(node: ScriptNode, answer: str) -> int:
    """
    YES_NO    -> score_weight si "oui" (insensible à la casse)
    CHOICE    -> score_impact de l'option choisie, 0 sinon
    RATING    -> round(note / 5 x score_weight)
    OPEN_TEXT -> score_weight si réponse non vide
    INFO      -> 0

    Le résultat est borné à [0, max(0, score_weight)] pour que le total
    reste croissant et plafonné par max_possible_score.
    """
    if node.type == NodeType.YES_NO:
        earned = node.score_weight if _is_yes(answer) else 0
    elif node.type == NodeType.CHOICE:
        option = _matching_option(node, answer)
        earned = option.score_impact if option else 0
    elif node.type == NodeType.RATING:
        rating = min(max(parse_rating(answer), 0), RATING_SCALE)
        earned = round_half_up(rating / RATING_SCALE * node.score_weight)
    elif node.type == NodeType.OPEN_TEXT:
        earned = node.score_weight if answer.strip() else 0
    else:
        earned = 0

    return min(max(earned, 0), max(node.score_weight, 0))


def resolve_next_node(node: ScriptNode, answer: str) -> Optional[str]:
    if node.type == NodeType.YES_NO:
        return node.yes_next_node_id if _is_yes(answer) else node.no_next_node_id

    if node.type == NodeType.CHOICE:
        option = _matching_option(node, answer)
        if option and option.next_node_id:
            return option.next_node_id
        return node.default_next_id

    return node.default_next_id


def should_trigger_action(trigger: ActionTrigger, answer: str) -> bool:
    if trigger.condition == "any":
        return True
    if trigger.condition == "yes" and _is_yes(answer):
        return True
    if trigger.condition == "no" and _is_no(answer):
        return True
    return trigger.condition == answer


# ════════════════════════════════════════════════════════════════════════════
# ÉTAT
# ════════════════════════════════════════════════════════════════════════════

def _empty_state(script_name: Optional[str] = None) -> ExecutionState:
    return ExecutionState(
        execution_id="",
        script_name=script_name or "Aucun script",
        current_node=None,
        is_complete=True,
        recommendation=NO_SCRIPT_RECOMMENDATION,
    )


def _first_node(script: ScriptDefinition) -> Optional[ScriptNode]:
    index = script.node_index()
    if script.root_node_id and script.root_node_id in index:
        return index[script.root_node_id]
    ordered = script.ordered_nodes()
    return ordered[0] if ordered else None


async def _load_responses(execution_id: str, up_to_seq: int) -> List[dict]:
    """Réponses validées uniquement (seq <= answered_count de l'exécution)"""
    return await db.script_responses.find(
        {"execution_id": execution_id, "seq": {"$lte": up_to_seq}}, {"_id": 0}
    ).sort("seq", 1).to_list(10000)


async def _discard_response(response_id: str):
    """Retire une réponse dont le rang n'a jamais été validé sur l'exécution"""
    await db.script_responses.delete_one({"id": response_id})


def _history(responses: List[dict], index: dict) -> List[HistoryEntry]:
    history = []
    for r in responses:
        node = index.get(r["node_id"])
        history.append(HistoryEntry(
            node_id=r["node_id"],
            question=node.question if node else "",
            answer=r["answer"],
            score_earned=r["score_earned"],
        ))
    return history


def _triggered(responses: List[dict]) -> List[ActionTrigger]:
    return [ActionTrigger(**r["triggered_action"]) for r in responses if r.get("triggered_action")]


async def _load_execution(execution_id: str):
    execution = await db.script_executions.find_one({"id": execution_id}, {"_id": 0})
    if not execution:
        raise NotFoundError(f"Exécution {execution_id} introuvable")

    script = await get_script_with_nodes(execution["script_id"])
    if not script:
        raise NotFoundError(f"Script {execution['script_id']} introuvable pour l'exécution {execution_id}")

    return execution, script


# ════════════════════════════════════════════════════════════════════════════
# OPÉRATIONS
# ════════════════════════════════════════════════════════════════════════════

async def start_execution(script_id: Optional[str], lead_id: str, user_id: str) -> ExecutionState:
    """
    Démarre un parcours de script pour un lead.
    Script absent ou vide => état terminé "Aucun script configuré" (pas une erreur).
    """
    script = await get_script_with_nodes(script_id) if script_id else None

    if not script or not script.nodes:
        logger.info(f"[SCRIPT_ENGINE] Aucun script exploitable (script_id={script_id}) pour lead {lead_id}")
        return _empty_state(script.name if script else None)

    max_score = max_possible_score(script.nodes)
    first = _first_node(script)

    execution = {
        "id": str(uuid.uuid4()),
        "script_id": script.id,
        "script_version": script.version,
        "lead_id": lead_id,
        "user_id": user_id,
        "total_score": 0,
        "max_possible_score": max_score,
        "answered_count": 0,
        "current_node_id": first.id,
        "completed_at": None,
        "score_percentage": None,
        "recommendation": None,
        "recommended_action": None,
        "created_at": now_iso(),
    }
    await db.script_executions.insert_one(execution)

    logger.info(
        f"[SCRIPT_ENGINE] Exécution {execution['id']} démarrée | script={script.name} v{script.version} "
        f"lead={lead_id} user={user_id} max={max_score}"
    )

    return ExecutionState(
        execution_id=execution["id"],
        script_name=script.name,
        current_node=first,
        max_possible_score=max_score,
    )


async def start_default_execution(organization_id: str, lead_id: str, user_id: str) -> ExecutionState:
    """Installe les scripts modèles si besoin puis démarre le script par défaut"""
    await seed_default_scripts(organization_id)

    script = await get_default_script(organization_id)
    if not script:
        return _empty_state("Aucun script configuré")

    return await start_execution(script.id, lead_id, user_id)


async def answer_node(execution_id: str, node_id: str, answer: str) -> ExecutionState:
    """
    Enregistre la réponse à un nœud et avance dans l'arbre.

    Ordre des écritures:
    1. insertion de la réponse au rang answered_count + 1 (index unique
       execution_id + seq): un second écrivant sur le même rang échoue ici
    2. mise à jour conditionnelle de l'exécution (score, rang, nœud courant
       et, si c'est la dernière réponse, figement) en UNE seule écriture
    Si 2 échoue, la réponse insérée en 1 est retirée avant de remonter l'erreur.

    Raises:
        NotFoundError: exécution ou nœud (dans le script de l'exécution) inexistant
        InvalidStateError: exécution déjà terminée, ou réponse concurrente
    """
    answer = answer if answer is not None else ""

    execution, script = await _load_execution(execution_id)
    index = script.node_index()

    node = index.get(node_id)
    if not node:
        raise NotFoundError(f"Nœud {node_id} introuvable dans le script {script.id}")

    if execution.get("completed_at"):
        raise InvalidStateError(f"Exécution {execution_id} déjà terminée", current_status="COMPLETED")

    prior_count = execution.get("answered_count", 0)
    previous = await _load_responses(execution_id, up_to_seq=prior_count)

    # 1. Calculs purs (aucune écriture avant ce point)
    score_earned = calculate_node_score(node, answer)
    next_node_id = resolve_next_node(node, answer)
    next_node = index.get(next_node_id) if next_node_id else None
    trigger = node.action_trigger if node.action_trigger and should_trigger_action(node.action_trigger, answer) else None

    new_total = execution.get("total_score", 0) + score_earned
    max_score = execution.get("max_possible_score", 0)
    is_complete = next_node is None

    if next_node_id and not next_node:
        logger.warning(f"[SCRIPT_ENGINE] Nœud {node_id} pointe vers {next_node_id} inexistant: fin du parcours")

    response = {
        "id": str(uuid.uuid4()),
        "execution_id": execution_id,
        "seq": prior_count + 1,
        "node_id": node_id,
        "answer": answer,
        "score_earned": score_earned,
        "triggered_action": trigger.model_dump(mode="json") if trigger else None,
        "created_at": now_iso(),
    }
    responses = previous + [response]
    history = _history(responses, index)
    triggered = _triggered(responses)

    updates = {"current_node_id": next_node.id if next_node else None, "updated_at": now_iso()}
    recommendation = None
    recommended_action = None
    percentage = None

    if is_complete:
        recommendation, recommended_action = generate_recommendation(new_total, max_score, triggered, history)
        percentage = round_half_up(new_total / max_score * 100) if max_score > 0 else 0
        updates.update({
            "completed_at": now_iso(),
            "score_percentage": percentage,
            "recommendation": recommendation,
            "recommended_action": recommended_action.value,
        })

    # 2. Réserver le rang
    try:
        await db.script_responses.insert_one(response)
    except DuplicateKeyError:
        raise InvalidStateError(
            f"Exécution {execution_id}: le rang {prior_count + 1} a déjà été répondu (réponse concurrente)"
        )

    # 3. Avancer (et figer si terminé) en une écriture, verrou optimiste sur answered_count
    try:
        result = await db.script_executions.update_one(
            {"id": execution_id, "completed_at": None, "answered_count": prior_count},
            {"$inc": {"total_score": score_earned, "answered_count": 1}, "$set": updates}
        )
    except PyMongoError:
        await _discard_response(response["id"])
        raise

    if result.matched_count == 0:
        await _discard_response(response["id"])
        raise InvalidStateError(
            f"Exécution {execution_id} modifiée entre-temps (réponse concurrente ou terminée)"
        )

    if is_complete:
        logger.info(
            f"[SCRIPT_ENGINE] Exécution {execution_id} terminée | score={new_total}/{max_score} "
            f"({percentage}%) action={recommended_action.value}"
        )
        fire_score_refresh(execution["lead_id"], reason="script_completed")

    return ExecutionState(
        execution_id=execution_id,
        script_name=script.name,
        current_node=next_node,
        answered_count=prior_count + 1,
        total_score=new_total,
        max_possible_score=max_score,
        score_percentage=percentage,
        is_complete=is_complete,
        recommendation=recommendation,
        recommended_action=recommended_action,
        triggered_actions=triggered,
        history=history,
    )


async def get_execution_state(execution_id: str) -> ExecutionState:
    """Reconstruit l'état d'une exécution depuis la base (reprise du cockpit)"""
    execution, script = await _load_execution(execution_id)
    index = script.node_index()
    answered = execution.get("answered_count", 0)
    responses = await _load_responses(execution_id, up_to_seq=answered)

    current_id = execution.get("current_node_id")
    completed = bool(execution.get("completed_at"))

    return ExecutionState(
        execution_id=execution_id,
        script_name=script.name,
        current_node=None if completed or not current_id else index.get(current_id),
        answered_count=answered,
        total_score=execution.get("total_score", 0),
        max_possible_score=execution.get("max_possible_score", 0),
        score_percentage=execution.get("score_percentage"),
        is_complete=completed,
        recommendation=execution.get("recommendation"),
        recommended_action=execution.get("recommended_action"),
        triggered_actions=_triggered(responses),
        history=_history(responses, index),
    )
