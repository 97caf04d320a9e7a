"""
Unit tests for the pending edit ledger.
"""

import pytest

from rules_sync.edits import DeleteEdit, InPlaceEdit, InsertEdit, MoveEdit
from rules_sync.errors import CapacityExceeded
from rules_sync.ledger import PendingEditLedger
from shared.test_helpers import TestDataFactory


class TestPendingEditLedger:
    """Test cases for PendingEditLedger."""

    @pytest.fixture
    def ledger(self):
        """Create PendingEditLedger instance."""
        return PendingEditLedger(capacity=3)

    @pytest.fixture
    def stored_rule(self):
        """Rule that exists in the store."""
        return TestDataFactory.create_rule(20, timestamp=1)

    @pytest.fixture
    def local_rule(self):
        """Rule created in this session."""
        return TestDataFactory.create_new_rule().with_changes(temp_id="temp-abc", key=15.0, timestamp=2)

    def test_insert_new_rule(self, ledger, local_rule):
        """Test placing a rule without an original position."""
        edit = ledger.insert_or_move(local_rule, 1)

        assert isinstance(edit, InsertEdit)
        assert edit.original_index is None
        assert edit.new_index == 1
        assert "temp-abc" in ledger

    def test_moving_inserted_rule_stays_insertion(self, ledger, local_rule):
        """Test a rule inserted this session never becomes a move."""
        ledger.insert_or_move(local_rule, 1)
        edit = ledger.insert_or_move(local_rule.with_changes(key=5.0, timestamp=3), 0)

        assert isinstance(edit, InsertEdit)
        assert edit.new_index == 0
        assert len(ledger) == 1

    def test_move_keeps_first_original_index(self, ledger, stored_rule):
        """Test repeated moves keep the position from before any edit."""
        ledger.insert_or_move(stored_rule.with_changes(key=5.0), 0, original_index=1)
        edit = ledger.insert_or_move(stored_rule.with_changes(key=35.0, timestamp=4), 3, original_index=0)

        assert isinstance(edit, MoveEdit)
        assert edit.original_index == 1
        assert edit.new_index == 3

    def test_delete_local_rule_drops_entry(self, ledger, local_rule):
        """Test deleting a rule the store never saw leaves no tombstone."""
        ledger.insert_or_move(local_rule, 1)

        assert ledger.mark_deleted(local_rule) is None
        assert len(ledger) == 0

    def test_delete_stored_rule_records_tombstone(self, ledger, stored_rule):
        """Test deleting a stored rule."""
        edit = ledger.mark_deleted(stored_rule, original_index=1)

        assert isinstance(edit, DeleteEdit)
        assert edit.deleted is True
        assert edit.new_index is None
        assert edit.original_index == 1

    def test_delete_after_move_uses_original_index(self, ledger, stored_rule):
        """Test a moved rule is tombstoned at its original position."""
        ledger.insert_or_move(stored_rule.with_changes(key=5.0), 0, original_index=1)
        edit = ledger.mark_deleted(stored_rule, original_index=0)

        assert edit.original_index == 1

    def test_delete_stored_rule_requires_position(self, ledger, stored_rule):
        """Test a stored rule without a known original position."""
        with pytest.raises(ValueError):
            ledger.mark_deleted(stored_rule)

    def test_in_place_edit_of_stored_rule(self, ledger, stored_rule):
        """Test editing fields of an untouched stored rule."""
        edit = ledger.record_in_place_edit(stored_rule.with_changes(name="Renamed"), original_index=1)

        assert isinstance(edit, InPlaceEdit)
        assert edit.new_index == edit.original_index == 1

    def test_in_place_edit_keeps_insertion(self, ledger, local_rule):
        """Test editing fields of a pending insertion keeps it an insertion."""
        ledger.insert_or_move(local_rule, 2)
        edit = ledger.record_in_place_edit(local_rule.with_changes(name="Renamed"))

        assert isinstance(edit, InsertEdit)
        assert edit.new_index == 2
        assert edit.rule.name == "Renamed"

    def test_in_place_edit_of_deleted_rule(self, ledger, stored_rule):
        """Test a tombstoned rule cannot be edited."""
        ledger.mark_deleted(stored_rule, original_index=1)

        with pytest.raises(ValueError):
            ledger.record_in_place_edit(stored_rule.with_changes(name="Renamed"))

    def test_capacity_exceeded(self, local_rule):
        """Test structural edits fail once the ledger is full."""
        ledger = PendingEditLedger(capacity=2)
        ledger.insert_or_move(local_rule, 0)
        ledger.mark_deleted(TestDataFactory.create_rule(20, timestamp=3), original_index=1)

        with pytest.raises(CapacityExceeded):
            ledger.insert_or_move(TestDataFactory.create_rule(30, timestamp=4), 0, original_index=2)

        assert len(ledger) == 2
        assert ledger.is_full is True
        assert "rule-30" not in ledger

    def test_entries_in_timestamp_order(self, ledger):
        """Test causal order is the timestamp, not the order of recording."""
        late = TestDataFactory.create_rule(10, timestamp=9)
        early = TestDataFactory.create_rule(20, timestamp=1)
        ledger.mark_deleted(late, original_index=0)
        ledger.mark_deleted(early, original_index=1)

        assert [edit.identity for edit in ledger.entries()] == ["rule-20", "rule-10"]
        assert [edit.identity for edit in ledger.without("rule-20")] == ["rule-10"]

    def test_clear(self, ledger, local_rule):
        """Test clearing drops every entry."""
        ledger.insert_or_move(local_rule, 0)
        ledger.clear()

        assert len(ledger) == 0
        assert ledger.is_full is False

    def test_invalid_capacity(self):
        """Test a ledger needs room for at least one entry."""
        with pytest.raises(ValueError):
            PendingEditLedger(capacity=0)


class TestPendingEditLedgerPositions:
    """Test cases for keeping placements at their current positions."""

    @pytest.fixture
    def ledger(self):
        """Create PendingEditLedger instance."""
        return PendingEditLedger(capacity=10)

    def _local(self, name, timestamp):
        return TestDataFactory.create_new_rule(name).with_changes(temp_id=f"temp-{name}", timestamp=timestamp)

    def _placements(self, ledger):
        return {edit.identity: edit.new_index for edit in ledger.entries()}

    def test_insertion_before_shifts_later_placements(self, ledger):
        """Test inserting ahead of earlier placements pushes them down."""
        ledger.insert_or_move(self._local("x", 1), 0)
        ledger.insert_or_move(self._local("y", 2), 0)
        ledger.insert_or_move(self._local("z", 3), 1)

        assert self._placements(ledger) == {"temp-x": 2, "temp-y": 0, "temp-z": 1}

    def test_insertion_after_leaves_placements(self, ledger):
        """Test inserting below a placement does not move it."""
        ledger.insert_or_move(self._local("x", 1), 2)
        ledger.insert_or_move(self._local("y", 2), 3)

        assert self._placements(ledger) == {"temp-x": 2, "temp-y": 3}

    def test_move_of_stored_rule_closes_its_gap(self, ledger):
        """Test a stored rule leaving its row pulls later placements up."""
        ledger.insert_or_move(self._local("x", 1), 5)
        ledger.insert_or_move(TestDataFactory.create_rule(20, timestamp=2), 8, original_index=2, from_index=2)

        assert self._placements(ledger) == {"temp-x": 4, "rule-20": 8}

    def test_moving_placed_rule_uses_its_own_position(self, ledger):
        """Test re-placing a rule takes it from where the ledger put it."""
        ledger.insert_or_move(self._local("x", 1), 1)
        ledger.insert_or_move(self._local("y", 2), 3)
        ledger.insert_or_move(self._local("x", 3), 4)

        assert self._placements(ledger) == {"temp-x": 4, "temp-y": 2}

    def test_deletion_pulls_later_placements_up(self, ledger):
        """Test deleting a row above a placement."""
        ledger.insert_or_move(self._local("x", 1), 4)
        ledger.mark_deleted(TestDataFactory.create_rule(20, timestamp=2), original_index=1, from_index=1)

        assert ledger.get("temp-x").new_index == 3

    def test_dropping_local_rule_pulls_later_placements_up(self, ledger):
        """Test forgetting an insertion frees its row."""
        ledger.insert_or_move(self._local("x", 1), 1)
        ledger.insert_or_move(self._local("y", 2), 3)
        ledger.mark_deleted(self._local("x", 3))

        assert self._placements(ledger) == {"temp-y": 2}

    def test_without_takes_rule_out_of_view(self, ledger):
        """Test the view without one rule renumbers only later placements."""
        ledger.insert_or_move(self._local("x", 1), 0)
        ledger.insert_or_move(self._local("y", 2), 5)

        edits = ledger.without("rule-30", from_index=3)

        assert {edit.identity: edit.new_index for edit in edits} == {"temp-x": 0, "temp-y": 4}
        assert ledger.get("temp-y").new_index == 5
