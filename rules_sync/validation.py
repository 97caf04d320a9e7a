"""
Rule form validation applied before a rule enters the ledger.
"""

import re
from typing import Sequence, Tuple

from .errors import InvalidRule
from .models import Endpoint, Rule

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _clean_endpoints(endpoints: Sequence[Endpoint], label: str) -> Tuple[Endpoint, ...]:
    cleaned = tuple(Endpoint(e.name.strip(), e.address.strip()) for e in endpoints)
    filled = [e for e in cleaned if e.address]
    if not filled:
        raise InvalidRule(f"At least one {label} must have an email.", {"field": f"{label}s"})
    if any(not EMAIL_PATTERN.match(e.address) for e in filled):
        raise InvalidRule(f"One or more {label} emails are invalid.", {"field": f"{label}s"})
    return cleaned


def validate_rule(rule: Rule) -> Rule:
    """Return a trimmed copy of ``rule`` or raise InvalidRule."""
    name = rule.name.strip()
    if not name:
        raise InvalidRule("Rule name is required.", {"field": "name"})

    return rule.with_changes(
        name=name,
        sources=_clean_endpoints(rule.sources, "source"),
        destinations=_clean_endpoints(rule.destinations, "destination"),
    )
