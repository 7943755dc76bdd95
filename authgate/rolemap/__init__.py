"""
Attribute-based role mapping for AuthGate.
"""

from .resolver import (
    RuleType,
    RULE_PRIORITY,
    RoleMappingRule,
    RoleAttributes,
    RoleMappingResolver,
    matches_pattern,
    parse_role_mappings,
    group_rules,
    resolve_role,
)

__all__ = [
    "RuleType",
    "RULE_PRIORITY",
    "RoleMappingRule",
    "RoleAttributes",
    "RoleMappingResolver",
    "matches_pattern",
    "parse_role_mappings",
    "group_rules",
    "resolve_role",
]
