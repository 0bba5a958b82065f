"""
Property-based tests for conflict detection and lifecycle using hypothesis

Tests invariants of:
- The clock skew threshold
- Suggestion ordering and de-duplication
- Statistics totals after arbitrary detect/resolve sequences
- Single-winner resolution
"""

from datetime import timedelta

from hypothesis import given, settings, strategies as st

from pricesync import ConflictEngine, InMemoryConflictStore, get_strategy
from pricesync.detector import ConflictDetector
from pricesync.models import ConflictType, MutationAction

from helpers import T0, FakeClock, price_record


@st.composite
def within_threshold_ms(draw):
    """Clock differences that count as noise: |delta| <= 1000 ms"""
    return draw(st.integers(min_value=-1000, max_value=1000))


@st.composite
def beyond_threshold_ms(draw):
    """Clock differences that count as concurrent edits: |delta| > 1000 ms"""
    magnitude = draw(st.integers(min_value=1001, max_value=10 * 24 * 3600 * 1000))
    return magnitude if draw(st.booleans()) else -magnitude


@st.composite
def mutations(draw):
    """(action, remote is live, timestamp delta in ms) for one detection call"""
    action = draw(st.sampled_from(list(MutationAction)))
    live = draw(st.booleans())
    delta = draw(st.integers(min_value=-5000, max_value=5000))
    return action, live, delta


def fresh_engine():
    return ConflictEngine(InMemoryConflictStore(), clock=FakeClock())


class TestThresholdProperties:
    """Test the clock skew threshold boundary"""

    @given(delta=within_threshold_ms())
    def test_noise_is_never_a_data_conflict(self, delta):
        local = price_record("p1", 1000, T0)
        remote = price_record("p1", 1200, T0 + timedelta(milliseconds=delta))

        result = ConflictDetector().detect(local, remote, "update")

        assert not result.has_conflicts

    @given(delta=beyond_threshold_ms(), action=st.sampled_from(list(MutationAction)))
    def test_divergence_is_exactly_one_data_conflict(self, delta, action):
        local = price_record("p1", 1000, T0)
        remote = price_record("p1", 1200, T0 + timedelta(milliseconds=delta))

        result = ConflictDetector().detect(local, remote, action)

        assert [c.type for c in result.conflicts].count(ConflictType.DATA) == 1

    @given(delta=st.integers(min_value=-20000, max_value=20000), threshold=st.integers(min_value=0, max_value=15000))
    def test_threshold_is_strict(self, delta, threshold):
        local = price_record("p1", 1000, T0)
        remote = price_record("p1", 1200, T0 + timedelta(milliseconds=delta))

        result = ConflictDetector(clock_skew_threshold_ms=threshold).detect(local, remote, "update")

        assert result.has_conflicts == (abs(delta) > threshold)


class TestSuggestionProperties:
    """Test suggestion lists for any detection outcome"""

    @given(mutation=mutations())
    def test_suggestions_unique_and_ordered(self, mutation):
        action, live, delta = mutation
        remote = price_record("p1", 1200, T0 + timedelta(milliseconds=delta), deleted=not live)

        result = ConflictDetector().detect(price_record("p1", 1000, T0), remote, action)

        ids = [s.id for s in result.resolution_suggestions]
        priorities = [s.priority for s in result.resolution_suggestions]
        assert len(ids) == len(set(ids))
        assert priorities == sorted(priorities)
        assert result.has_conflicts == bool(result.conflicts)
        assert bool(ids) == result.has_conflicts


class TestLifecycleProperties:
    """Test statistics and resolution invariants over random histories"""

    @given(
        steps=st.lists(mutations(), min_size=1, max_size=12),
        resolve_mask=st.lists(st.booleans(), min_size=12, max_size=12),
    )
    @settings(max_examples=50, deadline=None)
    def test_total_is_pending_plus_resolved(self, steps, resolve_mask):
        engine = fresh_engine()
        detected = []
        for i, (action, live, delta) in enumerate(steps):
            local = price_record(f"p{i}", 1000, T0)
            remote = price_record(f"p{i}", 1200, T0 + timedelta(milliseconds=delta), deleted=not live)
            detected.extend(engine.detect_conflicts(local, remote, action).conflicts)

        for conflict, resolve in zip(detected, resolve_mask):
            if resolve:
                engine.resolve_conflict_manually(conflict.id, "skip")

        stats = engine.get_conflict_statistics()
        assert stats.total == len(detected)
        assert stats.total == stats.pending + stats.resolved
        assert stats.pending == len(engine.get_pending_conflicts())
        assert stats.resolved == len(engine.get_resolution_history())
        assert sum(stats.by_type.values()) == stats.total
        assert sum(stats.by_severity.values()) == stats.total

    @given(strategy_id=st.sampled_from(["last_modified", "local_priority", "remote_priority"]))
    @settings(max_examples=20, deadline=None)
    def test_automatic_resolution_is_idempotent(self, strategy_id):
        engine = fresh_engine()
        local = price_record("p1", 1000, T0)
        remote = price_record("p1", 1200, T0 + timedelta(seconds=3))
        conflicts = engine.detect_conflicts(local, remote, "delete").conflicts
        strategy = get_strategy(strategy_id)

        first = engine.resolve_conflicts_automatically(conflicts, strategy)
        second = engine.resolve_conflicts_automatically(conflicts, strategy)

        assert len(first) == len(conflicts)
        assert second == []
        assert engine.get_pending_conflicts() == []
