"""
Routes Exécution de script (cockpit d'appel)

- POST /script-executions                       -> démarre un parcours
- POST /script-executions/{id}/answers          -> répond au nœud courant
- GET  /script-executions/{id}                  -> reprise de l'état
"""

from fastapi import APIRouter, HTTPException
import logging

from models import AnswerNodeRequest, StartExecutionRequest
from routes.http_errors import to_http
from services.errors import QualificationError
from services.script_engine import (
    answer_node,
    get_execution_state,
    start_default_execution,
    start_execution,
)

router = APIRouter(prefix="/script-executions", tags=["Script Executions"])
logger = logging.getLogger("routes.script_executions")


@router.post("")
async def start(data: StartExecutionRequest):
    """
    Démarre une exécution.
    Sans script_id, le script par défaut de l'organisation est utilisé
    (scripts modèles installés au premier appel).
    """
    if not data.script_id and not data.organization_id:
        raise HTTPException(status_code=400, detail="script_id ou organization_id requis")

    try:
        if data.script_id:
            state = await start_execution(data.script_id, data.lead_id, data.user_id)
        else:
            state = await start_default_execution(data.organization_id, data.lead_id, data.user_id)
    except QualificationError as e:
        raise to_http(e)

    return {"success": True, "state": state.model_dump(mode="json")}


@router.post("/{execution_id}/answers")
async def answer(execution_id: str, data: AnswerNodeRequest):
    """Enregistre une réponse et avance dans l'arbre"""
    try:
        state = await answer_node(execution_id, data.node_id, data.answer)
    except QualificationError as e:
        logger.warning(f"[SCRIPT_EXECUTION] Réponse refusée pour {execution_id}: {str(e)}")
        raise to_http(e)

    return {"success": True, "state": state.model_dump(mode="json")}


@router.get("/{execution_id}")
async def get_state(execution_id: str):
    try:
        state = await get_execution_state(execution_id)
    except QualificationError as e:
        raise to_http(e)

    return {"success": True, "state": state.model_dump(mode="json")}
