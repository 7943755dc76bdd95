"""
Identity-graph clients for AuthGate.
"""

from .client import IdentityGraphClient, MicrosoftGraphClient, StaticGraphClient, PROFILE_FIELDS

__all__ = ["IdentityGraphClient", "MicrosoftGraphClient", "StaticGraphClient", "PROFILE_FIELDS"]
