"""
Routes Workflow RDV

- POST /leads/{id}/rdv/qualify       -> qualify_rdv (lead en RDV_PLANIFIE)
- POST /leads/{id}/rdv/non-honore    -> handle_non_honore (lead en RDV_NON_HONORE)
- GET  /leads/{id}/timeline          -> journal d'activité du lead
"""

from fastapi import APIRouter, Query
from typing import Optional
import logging

from models import HandleNonHonoreCommand, QualifyRdvCommand
from routes.http_errors import to_http
from services.activity_logger import get_lead_activities
from services.errors import QualificationError
from services.rdv_workflow import handle_non_honore, qualify_rdv

router = APIRouter(prefix="/leads", tags=["RDV Workflow"])
logger = logging.getLogger("routes.rdv")


@router.post("/{lead_id}/rdv/qualify")
async def post_qualify_rdv(lead_id: str, data: QualifyRdvCommand):
    """Qualifie un RDV planifié (honoré ou non)"""
    try:
        return await qualify_rdv(lead_id, data)
    except QualificationError as e:
        logger.warning(f"[RDV] qualify_rdv refusé pour {lead_id}: {str(e)}")
        raise to_http(e)


@router.post("/{lead_id}/rdv/non-honore")
async def post_handle_non_honore(lead_id: str, data: HandleNonHonoreCommand):
    """Action de suivi après un RDV non honoré (relance ou appel)"""
    try:
        return await handle_non_honore(lead_id, data)
    except QualificationError as e:
        logger.warning(f"[RDV] handle_non_honore refusé pour {lead_id}: {str(e)}")
        raise to_http(e)


@router.get("/{lead_id}/timeline")
async def get_timeline(
    lead_id: str,
    type: Optional[str] = Query(None, description="Filtrer par type d'activité"),
    limit: int = 100,
    skip: int = 0
):
    return await get_lead_activities(lead_id, activity_type=type, limit=min(limit, 500), skip=skip)
