"""
Mapping of identity-graph profile fields to account attributes.
"""

import logging
from typing import Dict, Optional


logger = logging.getLogger(__name__)


DEFAULT_FIELD_MAPPINGS: Dict[str, str] = {
    # account record fields
    "givenName": "first_name",
    "surname": "last_name",
    "aboutMe": "description",
    "mySite": "url",
    # profile attributes
    "displayName": "nickname",
    "jobTitle": "job_title",
    "companyName": "company",
    "officeLocation": "office",
    "mobilePhone": "phone",
    "city": "billing_city",
    "state": "billing_state",
    "country": "billing_country",
    "postalCode": "billing_postcode",
    "streetAddress": "billing_address_1",
    # prefixed to avoid clashing with account fields
    "mail": "oauth2_email",
    "userPrincipalName": "oauth2_upn",
}

# Attribute keys written to the account record instead of the attribute map
ACCOUNT_RECORD_KEYS = ("first_name", "last_name", "description", "url")

UNMAPPED_PREFIX = "oauth2_"


def parse_field_mappings(text: Optional[str]) -> Dict[str, str]:
    """
    Parse ``field=key`` lines into a mapping.

    Blank lines and lines starting with ``#`` or ``//`` are ignored, as are
    lines without ``=`` or with an empty side. Later lines win.
    """
    mappings: Dict[str, str] = {}
    if not text:
        return mappings
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("//"):
            continue
        if "=" not in line:
            continue
        graph_field, key = (part.strip() for part in line.split("=", 1))
        if graph_field and key:
            mappings[graph_field] = key
    return mappings


def merge_field_mappings(custom_text: Optional[str]) -> Dict[str, str]:
    """Default mappings overlaid with custom ones (custom wins)."""
    merged = dict(DEFAULT_FIELD_MAPPINGS)
    merged.update(parse_field_mappings(custom_text))
    return merged


def attribute_key(graph_field: str, mappings: Dict[str, str]) -> str:
    """Attribute key a profile field is stored under."""
    return mappings.get(graph_field, f"{UNMAPPED_PREFIX}{graph_field}")
