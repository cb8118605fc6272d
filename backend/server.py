"""
Qualif CRM - API Backend
Scripts de qualification téléphonique + workflow post-RDV

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import client, db, CORS_ORIGINS, LOG_LEVEL

# Configuration logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("qualif_crm")

# Créer l'app
app = FastAPI(
    title="Qualif CRM",
    description="Scripts de qualification et suivi des RDV",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== IMPORT DES ROUTES ====================

from routes import scripts, script_executions, rdv  # noqa: E402

api_router = APIRouter(prefix="/api")
api_router.include_router(scripts.router)
api_router.include_router(script_executions.router)
api_router.include_router(rdv.router)

app.include_router(api_router)


# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "Qualif CRM API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup():
    logger.info("🚀 Qualif CRM démarré")

    await db.qualification_scripts.create_index("id", unique=True)
    await db.qualification_scripts.create_index([("organization_id", 1), ("name", 1), ("version", -1)])
    await db.script_executions.create_index("id", unique=True)
    await db.script_executions.create_index([("lead_id", 1), ("completed_at", -1)])
    # Un rang de réponse par exécution: verrou de answer_node
    await db.script_responses.create_index([("execution_id", 1), ("seq", 1)], unique=True)
    await db.leads.create_index("id", unique=True)
    await db.leads.create_index("status")
    await db.lead_activities.create_index([("lead_id", 1), ("created_at", -1)])
    await db.score_refresh_failures.create_index("lead_id")

    logger.info("✅ Index MongoDB créés")


@app.on_event("shutdown")
async def shutdown():
    from services.lead_scoring import wait_for_pending_refreshes

    await wait_for_pending_refreshes()
    client.close()
    logger.info("Connexion MongoDB fermée")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
