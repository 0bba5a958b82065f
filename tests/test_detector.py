"""
Unit tests for ConflictDetector

Tests cover:
- Data conflicts and the clock skew threshold
- Deletion conflicts against live and deleted remote records
- Creation conflicts against existing remote identities
- Multiple conflicts from one call and merged suggestions
- Input validation
"""

import unittest
from datetime import timedelta

from pricesync.detector import ConflictDetector
from pricesync.errors import ValidationError
from pricesync.models import ConflictStatus, ConflictType, MutationAction, Severity

from helpers import T0, FakeClock, price_record


def ids(strategies):
    return [s.id for s in strategies]


class TestDataConflicts(unittest.TestCase):
    """Test suite for timestamp-based data conflicts."""

    def setUp(self):
        self.clock = FakeClock(T0 + timedelta(hours=1))
        self.detector = ConflictDetector(clock=self.clock)

    def test_concurrent_edit(self):
        local = price_record("p1", 1000, T0)
        remote = price_record("p1", 1200, T0 + timedelta(milliseconds=2000))

        result = self.detector.detect(local, remote, "update")

        self.assertTrue(result.has_conflicts)
        self.assertEqual(len(result.conflicts), 1)
        conflict = result.conflicts[0]
        self.assertEqual(conflict.type, ConflictType.DATA)
        self.assertEqual(conflict.severity, Severity.MEDIUM)
        self.assertEqual(conflict.action, MutationAction.UPDATE)
        self.assertEqual(conflict.status, ConflictStatus.PENDING)
        self.assertEqual(conflict.detected_at, self.clock.now)
        self.assertEqual(conflict.local_data, local)
        self.assertEqual(conflict.remote_data, remote)

    def test_suggestions_for_data_conflict(self):
        local = price_record("p1", 1000, T0)
        remote = price_record("p1", 1200, T0 + timedelta(seconds=5))

        result = self.detector.detect(local, remote, MutationAction.UPDATE)

        self.assertEqual(
            ids(result.resolution_suggestions),
            ["last_modified", "user_preference", "local_priority", "remote_priority", "merge_data"],
        )

    def test_exactly_threshold_is_clock_noise(self):
        local = price_record("p1", 1000, T0)
        remote = price_record("p1", 1200, T0 + timedelta(milliseconds=1000))

        result = self.detector.detect(local, remote, "update")

        self.assertFalse(result.has_conflicts)
        self.assertEqual(result.conflicts, [])
        self.assertEqual(result.resolution_suggestions, [])

    def test_just_over_threshold(self):
        local = price_record("p1", 1000, T0 + timedelta(milliseconds=1001))
        remote = price_record("p1", 1200, T0)

        result = self.detector.detect(local, remote, "update")

        self.assertEqual([c.type for c in result.conflicts], [ConflictType.DATA])

    def test_missing_timestamp_skips_check(self):
        local = price_record("p1", 1000)
        remote = price_record("p1", 1200, T0)

        self.assertFalse(self.detector.detect(local, remote, "update").has_conflicts)
        self.assertFalse(self.detector.detect(remote, local, "update").has_conflicts)

    def test_mixed_timestamp_formats(self):
        local = {"id": "p1", "updatedAt": int(T0.timestamp() * 1000)}
        remote = {"id": "p1", "updated_at": (T0 + timedelta(seconds=3)).isoformat()}

        result = self.detector.detect(local, remote, "update")

        self.assertEqual([c.type for c in result.conflicts], [ConflictType.DATA])

    def test_custom_threshold(self):
        detector = ConflictDetector(clock_skew_threshold_ms=5000)
        local = price_record("p1", 1000, T0)
        remote = price_record("p1", 1200, T0 + timedelta(seconds=3))

        self.assertFalse(detector.detect(local, remote, "update").has_conflicts)

    def test_negative_threshold_rejected(self):
        with self.assertRaises(ValidationError):
            ConflictDetector(clock_skew_threshold_ms=-1)


class TestDeletionConflicts(unittest.TestCase):
    """Test suite for deletion conflicts."""

    def setUp(self):
        self.detector = ConflictDetector(clock=FakeClock())

    def test_delete_of_live_record(self):
        result = self.detector.detect(price_record("p2"), price_record("p2", 900), "delete")

        self.assertEqual(len(result.conflicts), 1)
        conflict = result.conflicts[0]
        self.assertEqual(conflict.type, ConflictType.DELETION)
        self.assertEqual(conflict.severity, Severity.HIGH)
        self.assertEqual(ids(result.resolution_suggestions), ["user_preference", "remote_priority"])

    def test_delete_of_remotely_deleted_record(self):
        remote = price_record("p2", 900, deleted=True)
        self.assertFalse(self.detector.detect(price_record("p2"), remote, "delete").has_conflicts)

    def test_delete_without_remote(self):
        self.assertFalse(self.detector.detect(price_record("p2"), None, "delete").has_conflicts)

    def test_update_of_live_record_is_not_deletion(self):
        result = self.detector.detect(price_record("p2"), price_record("p2", 900), "update")
        self.assertFalse(result.has_conflicts)


class TestCreationConflicts(unittest.TestCase):
    """Test suite for creation conflicts."""

    def setUp(self):
        self.detector = ConflictDetector(clock=FakeClock())

    def test_create_of_existing_identity(self):
        result = self.detector.detect(price_record("p3"), price_record("p3", 1100), "create")

        self.assertEqual(len(result.conflicts), 1)
        conflict = result.conflicts[0]
        self.assertEqual(conflict.type, ConflictType.CREATION)
        self.assertEqual(conflict.severity, Severity.LOW)
        self.assertEqual(ids(result.resolution_suggestions), ["local_priority", "remote_priority"])
        self.assertNotIn("last_modified", ids(result.resolution_suggestions))

    def test_create_of_offline_record_without_server_id(self):
        local = {"localId": "tmp-17", "price": 1000}
        result = self.detector.detect(local, price_record("p3"), "create")
        self.assertEqual([c.type for c in result.conflicts], [ConflictType.CREATION])

    def test_create_without_remote(self):
        self.assertFalse(self.detector.detect(price_record("p3"), None, "create").has_conflicts)

    def test_remote_without_identity(self):
        remote = {"price": 1100}
        self.assertFalse(self.detector.detect(price_record("p3"), remote, "create").has_conflicts)

    def test_custom_identity_field(self):
        detector = ConflictDetector(identity_field="uuid")
        result = detector.detect({"uuid": "u-1"}, {"uuid": "u-1"}, "create")
        self.assertEqual([c.type for c in result.conflicts], [ConflictType.CREATION])


class TestMultipleConflicts(unittest.TestCase):
    """Test suite for calls yielding several conflicts."""

    def setUp(self):
        self.detector = ConflictDetector(clock=FakeClock())

    def test_delete_of_concurrently_edited_record(self):
        local = price_record("p4", 1000, T0)
        remote = price_record("p4", 1300, T0 + timedelta(seconds=10))

        result = self.detector.detect(local, remote, "delete")

        self.assertEqual(
            [c.type for c in result.conflicts],
            [ConflictType.DATA, ConflictType.DELETION],
        )
        suggestion_ids = ids(result.resolution_suggestions)
        self.assertEqual(len(suggestion_ids), len(set(suggestion_ids)))
        self.assertEqual(
            suggestion_ids,
            ["last_modified", "user_preference", "local_priority", "remote_priority", "merge_data"],
        )

    def test_create_with_diverging_timestamps_suggests_last_modified(self):
        local = price_record("p5", 1000, T0)
        remote = price_record("p5", 1000, T0 + timedelta(seconds=4))

        result = self.detector.detect(local, remote, "create")

        self.assertEqual(
            [c.type for c in result.conflicts],
            [ConflictType.DATA, ConflictType.CREATION],
        )
        self.assertIn("last_modified", ids(result.resolution_suggestions))

    def test_conflict_ids_are_unique(self):
        local = price_record("p4", 1000, T0)
        remote = price_record("p4", 1300, T0 + timedelta(seconds=10))

        result = self.detector.detect(local, remote, "delete")

        self.assertEqual(len({c.id for c in result.conflicts}), 2)


class TestValidation(unittest.TestCase):
    """Test suite for malformed input."""

    def setUp(self):
        self.detector = ConflictDetector()

    def test_local_must_be_mapping(self):
        with self.assertRaises(ValidationError):
            self.detector.detect(None, price_record(), "update")

    def test_remote_must_be_mapping_or_none(self):
        with self.assertRaises(ValidationError):
            self.detector.detect(price_record(), ["p1"], "update")

    def test_unknown_action(self):
        with self.assertRaises(ValidationError):
            self.detector.detect(price_record(), price_record(), "upsert")

    def test_identities_must_match(self):
        with self.assertRaises(ValidationError):
            self.detector.detect(price_record("p1"), price_record("p9"), "update")

    def test_unparseable_timestamp(self):
        local = price_record("p1", updated_at="last tuesday")
        with self.assertRaises(ValidationError):
            self.detector.detect(local, price_record("p1", updated_at=T0), "update")

    def test_out_of_range_epoch(self):
        local = {"id": "p1", "updatedAt": 1e20}
        with self.assertRaises(ValidationError):
            self.detector.detect(local, {"id": "p1", "updatedAt": 0}, "update")

    def test_nan_epoch(self):
        remote = {"id": "p1", "updatedAt": float("nan")}
        with self.assertRaises(ValidationError):
            self.detector.detect(price_record("p1", updated_at=T0), remote, "update")


if __name__ == "__main__":
    unittest.main()
