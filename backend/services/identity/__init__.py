"""
Identity services: raw identity normalization, personnel lookups and the
administrator roster.
"""

from .admin_roster_service import AdminRoster
from .identity_normalizer_service import (
    IdentityNormalizerService, identities_match, identity_key, match_key, normalize
)
from .personnel_directory_service import PersonnelDirectory

__all__ = [
    "AdminRoster",
    "IdentityNormalizerService",
    "PersonnelDirectory",
    "identities_match",
    "identity_key",
    "match_key",
    "normalize"
]
