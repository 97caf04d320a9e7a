"""
Rule storage for the Rule Store Service.

The repository keeps the ordered rule list in memory and applies batches
atomically; partition scoping is expressed with Scope.
"""

from .repository import RuleRepository, Scope, make_terminator

__all__ = ["RuleRepository", "Scope", "make_terminator"]
