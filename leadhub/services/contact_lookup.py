"""
Caller identification: find the CRM contact behind an incoming number.

Numbers are compared on their last 9 digits against the main phone, the
WhatsApp number and the secondary phone, in that order.
"""

import logging
from typing import Optional

from leadhub.config import DIRECTUS_CONTACTS_COLLECTION
from leadhub.models import MatchedContact
from leadhub.services.directus_client import DirectusClient, DirectusError
from leadhub.services.identity import normalize_phone, phones_match, MIN_PHONE_DIGITS

logger = logging.getLogger("contact_lookup")

PHONE_FIELDS = [
    ("phone", "phone"),
    ("whatsapp_number", "whatsapp"),
    ("contact_phone", "contact_phone"),
]


class ContactLookup:

    def __init__(self, client: DirectusClient, collection: str = DIRECTUS_CONTACTS_COLLECTION):
        self.client = client
        self.collection = collection

    async def find_by_phone(self, phone: Optional[str]) -> Optional[MatchedContact]:
        if len(normalize_phone(phone)) < MIN_PHONE_DIGITS:
            return None

        try:
            contacts = await self.client.read_items(self.collection, {
                "limit": -1,
                "fields": "id,company_name,contact_name,contact_person,nif,phone,whatsapp_number,contact_phone",
            })
        except DirectusError as e:
            logger.warning(f"Contact lookup failed for {normalize_phone(phone)}: {e.message}")
            return None

        for contact in contacts:
            for field, label in PHONE_FIELDS:
                if contact.get(field) and phones_match(phone, contact[field]):
                    logger.info(f"Caller matched contact {contact.get('id')} by {label}")
                    return MatchedContact(
                        id=str(contact.get("id")),
                        company_name=contact.get("company_name"),
                        contact_name=contact.get("contact_name"),
                        contact_person=contact.get("contact_person"),
                        nif=contact.get("nif"),
                        matched_field=label,
                    )
        return None
