"""
Configuration et utilitaires partagés
"""

import os
import math
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'qualif_crm')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

# Kill switch du recalcul de score en tâche de fond
SCORE_REFRESH_ENABLED = os.environ.get('SCORE_REFRESH_ENABLED', 'true').lower() in ('1', 'true', 'yes')


# ==================== HELPERS ====================

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()


def note_timestamp() -> str:
    """Horodatage lisible des notes lead (jj/mm/aaaa hh:mm, UTC)"""
    return datetime.now(timezone.utc).strftime("%d/%m/%Y %H:%M")


def round_half_up(value: float) -> int:
    """Arrondi commercial (0.5 -> 1), pas l'arrondi bancaire de round()"""
    return int(math.floor(value + 0.5))
