"""
Unit tests for rule form validation.
"""

import pytest

from rules_sync.errors import InvalidRule
from rules_sync.models import Endpoint
from rules_sync.validation import validate_rule
from shared.test_helpers import TestDataFactory


class TestValidateRule:
    """Test cases for validate_rule."""

    @pytest.fixture
    def rule(self):
        """Valid unsaved rule."""
        return TestDataFactory.create_new_rule()

    def test_valid_rule_trimmed(self, rule):
        """Test names and addresses are trimmed."""
        messy = rule.with_changes(
            name="  Office  ",
            sources=[Endpoint(" Alice ", " alice@example.com ")],
        )

        cleaned = validate_rule(messy)

        assert cleaned.name == "Office"
        assert cleaned.sources == (Endpoint("Alice", "alice@example.com"),)

    def test_name_required(self, rule):
        """Test a blank name."""
        with pytest.raises(InvalidRule) as exc_info:
            validate_rule(rule.with_changes(name="   "))

        assert exc_info.value.details["field"] == "name"

    def test_source_required(self, rule):
        """Test a rule whose sources have no address."""
        with pytest.raises(InvalidRule) as exc_info:
            validate_rule(rule.with_changes(sources=[Endpoint("Alice", "  ")]))

        assert exc_info.value.details["field"] == "sources"

    def test_destination_required(self, rule):
        """Test a rule without destinations."""
        with pytest.raises(InvalidRule) as exc_info:
            validate_rule(rule.with_changes(destinations=[]))

        assert exc_info.value.details["field"] == "destinations"

    @pytest.mark.parametrize("address", ["alice", "alice@", "alice@example", "a b@example.com"])
    def test_invalid_email(self, rule, address):
        """Test addresses that are not e-mail addresses."""
        with pytest.raises(InvalidRule):
            validate_rule(rule.with_changes(sources=[Endpoint("Alice", address)]))

    def test_blank_entries_allowed_next_to_valid_ones(self, rule):
        """Test an empty row in the endpoint list does not fail validation."""
        cleaned = validate_rule(rule.with_changes(
            destinations=[Endpoint("Bob", "bob@example.com"), Endpoint("", "")]
        ))

        assert len(cleaned.destinations) == 2
