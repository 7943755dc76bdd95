"""
Attribute-based role mapping.

Rules are written one per line as ``type:pattern:role``, for example::

    email:*@library.uh.edu:editor
    group:Faculty*:author
    jobtitle:Librarian*:editor
    department:IT:administrator

Rule groups are consulted in the fixed order email, group, jobtitle,
department. Inside a group the first declared matching rule wins.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, Iterable, List, Optional


logger = logging.getLogger(__name__)


class RuleType(str, Enum):
    """Attribute a rule is matched against, in priority order"""
    EMAIL = "email"
    GROUP = "group"
    JOBTITLE = "jobtitle"
    DEPARTMENT = "department"


RULE_PRIORITY = (RuleType.EMAIL, RuleType.GROUP, RuleType.JOBTITLE, RuleType.DEPARTMENT)


@dataclass(frozen=True)
class RoleMappingRule:
    """Map attribute values matching ``pattern`` to ``role``"""
    type: RuleType
    pattern: str
    role: str


@dataclass
class RoleAttributes:
    """Profile attributes a role can be derived from"""
    email: str = ""
    job_title: Optional[str] = None
    department: Optional[str] = None
    groups: List[str] = field(default_factory=list)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> "re.Pattern":
    regex = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(regex, re.IGNORECASE)


def matches_pattern(value: str, pattern: str) -> bool:
    """
    Match a value against a wildcard pattern.

    ``*`` matches any run of characters, ``?`` exactly one; everything else
    is literal. The match is anchored at both ends and case-insensitive.
    """
    if value == pattern:
        return True
    return _compile(pattern).fullmatch(value) is not None


def parse_role_mappings(text: Optional[str], role_exists: Optional[Callable[[str], bool]] = None) -> List[RoleMappingRule]:
    """
    Parse rule text into rules, keeping declaration order.

    Blank lines and lines starting with ``#`` or ``//`` are ignored, as are
    lines that are malformed, name an unknown type, or name a role that
    ``role_exists`` rejects.
    """
    rules: List[RoleMappingRule] = []
    if not text:
        return rules

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("//"):
            continue

        parts = line.split(":", 2)
        if len(parts) != 3:
            logger.debug(f"Skipping malformed role mapping line: {line}")
            continue

        rule_type, pattern, role = (part.strip() for part in parts)
        try:
            rule_type = RuleType(rule_type.lower())
        except ValueError:
            logger.debug(f"Skipping role mapping with unknown type: {line}")
            continue

        if role_exists is not None and not role_exists(role):
            logger.debug(f"Skipping role mapping for unknown role {role}")
            continue

        rules.append(RoleMappingRule(rule_type, pattern, role))

    return rules


def group_rules(rules: Iterable[RoleMappingRule]) -> Dict[RuleType, List[RoleMappingRule]]:
    """Group rules by type, preserving declaration order within each group."""
    grouped: Dict[RuleType, List[RoleMappingRule]] = {rule_type: [] for rule_type in RULE_PRIORITY}
    for rule in rules:
        grouped[RuleType(rule.type)].append(rule)
    return grouped


def _candidates(attrs: RoleAttributes, rule_type: RuleType) -> List[str]:
    if rule_type == RuleType.EMAIL:
        return [attrs.email] if attrs.email else []
    if rule_type == RuleType.GROUP:
        return [group for group in attrs.groups or [] if group]
    if rule_type == RuleType.JOBTITLE:
        return [attrs.job_title] if attrs.job_title else []
    return [attrs.department] if attrs.department else []


def resolve_role(
    attrs: RoleAttributes,
    rules: Iterable[RoleMappingRule],
    default_role: str,
    role_exists: Optional[Callable[[str], bool]] = None,
) -> str:
    """
    Pick the role for a set of attributes.

    Returns the role of the first matching rule in priority order, or
    ``default_role`` when nothing matches. Rules whose role fails
    ``role_exists`` never match.
    """
    grouped = group_rules(rules)
    for rule_type in RULE_PRIORITY:
        values = _candidates(attrs, rule_type)
        if not values:
            continue
        for rule in grouped[rule_type]:
            if role_exists is not None and not role_exists(rule.role):
                continue
            if any(matches_pattern(value, rule.pattern) for value in values):
                return rule.role
    return default_role


class RoleMappingResolver:
    """Resolver bound to a rule set and a role registry"""

    def __init__(self, rules: Iterable[RoleMappingRule], role_exists: Optional[Callable[[str], bool]] = None):
        self.rules = list(rules)
        self.role_exists = role_exists

    @classmethod
    def from_text(cls, text: Optional[str], role_exists: Optional[Callable[[str], bool]] = None) -> "RoleMappingResolver":
        return cls(parse_role_mappings(text, role_exists), role_exists)

    def resolve(self, attrs: RoleAttributes, default_role: str) -> str:
        return resolve_role(attrs, self.rules, default_role, self.role_exists)
