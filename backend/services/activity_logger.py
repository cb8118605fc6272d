"""
Service de journalisation des activités lead (journal d'audit append-only)
"""

from typing import Optional
from config import db, now_iso
import uuid


async def log_lead_activity(
    lead_id: str,
    activity_type: str,
    description: str,
    performed_by: str,
    previous_status: Optional[str] = None,
    new_status: Optional[str] = None,
    metadata: dict = None
):
    """
    Enregistre une entrée dans le journal d'activité du lead.

    Jamais modifiée ni supprimée ensuite. Le workflow n'y relit rien:
    seule la timeline de l'API la consulte.

    Types: RDV_NO_SHOW, RDV_COMPLETED, RDV_BOOKED, STATUS_CHANGE, RELANCE,
           CALL_OUTBOUND, CALL_NO_ANSWER
    """
    log_entry = {
        "id": str(uuid.uuid4()),
        "lead_id": lead_id,
        "type": activity_type,
        "description": description,
        "performed_by": performed_by or "system",
        "previous_status": previous_status,
        "new_status": new_status,
        "metadata": metadata or {},
        "created_at": now_iso()
    }

    await db.lead_activities.insert_one(log_entry)
    log_entry.pop("_id", None)
    return log_entry


async def get_lead_activities(
    lead_id: str,
    activity_type: str = None,
    limit: int = 100,
    skip: int = 0
):
    """
    Récupère la timeline d'un lead (plus récent en premier)
    """
    query = {"lead_id": lead_id}

    if activity_type:
        query["type"] = activity_type

    logs = await db.lead_activities.find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)

    total = await db.lead_activities.count_documents(query)

    return {"activities": logs, "total": total, "limit": limit, "skip": skip}
