"""
Shared configuration and helpers

Leadhub - Directus lead pipeline
"""

import os
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Load .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB (legacy call feed + event log)
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'leadhub')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# ==================== DIRECTUS ====================

DIRECTUS_URL = os.environ.get('DIRECTUS_URL', 'http://localhost:8055')
# Service token used when no operator session token is stored
DIRECTUS_TOKEN = os.environ.get('DIRECTUS_TOKEN', '')
DIRECTUS_TIMEOUT = float(os.environ.get('DIRECTUS_TIMEOUT', '30'))

DIRECTUS_LEADS_COLLECTION = os.environ.get('DIRECTUS_LEADS_COLLECTION', 'leads')
DIRECTUS_CONTACTS_COLLECTION = os.environ.get('DIRECTUS_CONTACTS_COLLECTION', 'contacts')
DIRECTUS_NEWSLETTER_COLLECTION = os.environ.get('DIRECTUS_NEWSLETTER_COLLECTION', 'newsletter_subscriptions')
DIRECTUS_IDENTITY_MAP_COLLECTION = os.environ.get('DIRECTUS_IDENTITY_MAP_COLLECTION', 'newsletter_identity_map')

# ==================== WEBHOOKS ====================

WEBHOOK_CALL_TOKEN = os.environ.get('WEBHOOK_CALL_TOKEN', '')
WEBHOOK_LEAD_TOKEN = os.environ.get('WEBHOOK_LEAD_TOKEN', '')
# Optional: Directus Flow -> /api/hooks/directus
DIRECTUS_HOOK_TOKEN = os.environ.get('DIRECTUS_HOOK_TOKEN', '')

# ==================== LEAD PIPELINE ====================

BRIDGE_ENABLED = os.environ.get('BRIDGE_ENABLED', 'false').lower() in ('1', 'true', 'yes')
BRIDGE_INTERVAL_SECONDS = int(os.environ.get('BRIDGE_INTERVAL_SECONDS', '3'))
LISTENER_ENABLED = os.environ.get('LISTENER_ENABLED', 'true').lower() in ('1', 'true', 'yes')
LISTENER_INTERVAL_SECONDS = int(os.environ.get('LISTENER_INTERVAL_SECONDS', '3'))
LEAD_POPUP_SECONDS = int(os.environ.get('LEAD_POPUP_SECONDS', '18'))

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')


# ==================== HELPERS ====================

def now_iso() -> str:
    """Current UTC date/time in ISO format"""
    return datetime.now(timezone.utc).isoformat()
