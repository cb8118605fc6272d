"""
Routes Scripts de qualification

Catalogue par organisation:
- Liste / détail
- Publication (nouvelle version à chaque fois)
- Installation des scripts modèles
"""

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
import logging

from models import ScriptCategory, ScriptPublish
from routes.http_errors import to_http
from services.errors import QualificationError
from services.script_catalog import (
    get_script_with_nodes,
    list_scripts,
    publish_script,
    seed_default_scripts,
)

router = APIRouter(prefix="/scripts", tags=["Scripts"])
logger = logging.getLogger("routes.scripts")


class SeedScriptsRequest(BaseModel):
    organization_id: str
    category: ScriptCategory = ScriptCategory.OF_STANDARD


@router.get("")
async def get_scripts(
    organization_id: str = Query(..., description="Organisation propriétaire"),
    include_inactive: bool = Query(False, description="Inclure les versions remplacées")
):
    """Liste les scripts (sans les nœuds)"""
    scripts = await list_scripts(organization_id, include_inactive=include_inactive)
    return {"scripts": scripts, "count": len(scripts)}


@router.get("/{script_id}")
async def get_script(script_id: str):
    """Script complet avec ses nœuds triés"""
    script = await get_script_with_nodes(script_id)
    if not script:
        raise HTTPException(status_code=404, detail="Script non trouvé")
    return script.model_dump(mode="json")


@router.post("")
async def create_script_version(
    data: ScriptPublish,
    organization_id: str = Query(...),
    performed_by: str = Query("system")
):
    """
    Publie un script. Le graphe est validé (références, cycles, options)
    avant insertion; une version existante n'est jamais modifiée.
    """
    try:
        script = await publish_script(data, organization_id, performed_by=performed_by)
    except QualificationError as e:
        raise to_http(e)

    return {"success": True, "script": script.model_dump(mode="json")}


@router.post("/seed-defaults")
async def seed_defaults(data: SeedScriptsRequest):
    """Installe le script modèle si l'organisation n'en a aucun"""
    script = await seed_default_scripts(data.organization_id, data.category)
    return {
        "success": True,
        "created": script is not None,
        "script_id": script.id if script else None
    }
