"""
Unit tests for session_store module.

Compare-and-set semantics, retry behavior and corruption recovery.
"""

import pytest
from filelock import FileLock

from superego.paths import InvalidPathError
from superego.session_schema import Phase, SessionState
from superego.session_store import SessionStore


class TestSessionStore:
    """Tests for SessionStore class."""

    @pytest.fixture
    def store(self, paths):
        return SessionStore(paths, lock_timeout=0.2, max_attempts=3)

    def test_read_missing_returns_default(self, store):
        state = store.read("fresh")
        assert state == SessionState()
        assert state.phase == Phase.EXPLORING

    def test_read_corrupt_returns_default(self, store, paths):
        paths.session_dir("s1").mkdir(parents=True)
        paths.state_file("s1").write_text("{ truncated", encoding="utf-8")

        assert store.read("s1") == SessionState()

    def test_compare_and_set_writes_and_bumps_revision(self, store):
        prior = store.read("s1")
        assert store.compare_and_set("s1", prior, prior.transition_to(Phase.READY))

        stored = store.read("s1")
        assert stored.phase == Phase.READY
        assert stored.revision == 1

    def test_compare_and_set_rejects_stale_prior(self, store):
        prior = store.read("s1")
        assert store.compare_and_set("s1", prior, prior.transition_to(Phase.DISCUSSING))

        # Second writer still holds the original snapshot
        assert not store.compare_and_set("s1", prior, prior.transition_to(Phase.READY))
        assert store.read("s1").phase == Phase.DISCUSSING

    def test_compare_and_set_fails_on_lock_timeout(self, store, paths):
        prior = store.read("s1")
        paths.session_dir("s1").mkdir(parents=True)

        with FileLock(str(paths.state_lock("s1"))):
            assert not store.compare_and_set("s1", prior, prior.transition_to(Phase.READY))

    def test_no_temp_files_left_behind(self, store, paths):
        prior = store.read("s1")
        store.compare_and_set("s1", prior, prior.transition_to(Phase.READY))

        leftovers = [p.name for p in paths.session_dir("s1").iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_update_applies_mutation(self, store):
        result = store.update("s1", lambda s: s.with_override("user approved", uses=2))

        assert result.committed
        assert result.attempts == 1
        assert store.read("s1").override_expires_after_uses == 2

    def test_update_none_means_no_write(self, store, paths):
        result = store.update("s1", lambda s: None)

        assert result.committed
        assert not paths.state_file("s1").exists()

    def test_update_retries_after_conflict(self, store):
        calls = []

        def mutate(state):
            calls.append(state.revision)
            if len(calls) == 1:
                # Interleave a competing write between read and commit
                other = store.read("s1")
                store.compare_and_set("s1", other, other.model_copy(update={"blocks": 7}))
            return state.model_copy(update={"evaluations": state.evaluations + 1})

        result = store.update("s1", mutate)

        assert result.committed
        assert result.attempts == 2
        stored = store.read("s1")
        assert stored.blocks == 7
        assert stored.evaluations == 1

    def test_update_gives_up_after_max_attempts(self, store, paths):
        paths.session_dir("s1").mkdir(parents=True)

        with FileLock(str(paths.state_lock("s1"))):
            result = store.update("s1", lambda s: s.transition_to(Phase.READY))

        assert not result.committed
        assert result.attempts == 3
        assert result.state.phase == Phase.EXPLORING

    def test_reset(self, store):
        prior = store.read("s1")
        store.compare_and_set("s1", prior, prior.transition_to(Phase.READY))

        assert store.reset("s1")
        assert store.read("s1") == SessionState()
        assert not store.reset("s1")

    def test_reset_returns_false_on_lock_timeout(self, store, paths):
        prior = store.read("s1")
        store.compare_and_set("s1", prior, prior.transition_to(Phase.READY))

        with FileLock(str(paths.state_lock("s1"))):
            assert not store.reset("s1")

        assert paths.state_file("s1").exists()
        assert store.read("s1").phase == Phase.READY

    def test_list_sessions(self, store):
        for sid in ("b", "a"):
            prior = store.read(sid)
            store.compare_and_set(sid, prior, prior.transition_to(Phase.READY))

        assert store.list_sessions() == ["a", "b"]

    @pytest.mark.parametrize("session_id", ["", "..", "a/b", "a\x00b"])
    def test_invalid_session_ids_rejected(self, store, session_id):
        with pytest.raises(InvalidPathError):
            store.read(session_id)


class TestSessionStateOverride:
    def test_consume_decrements_then_clears(self):
        state = SessionState().with_override("ok", uses=2)

        once = state.consume_override()
        assert once.has_override()
        assert once.override_expires_after_uses == 1

        twice = once.consume_override()
        assert not twice.has_override()
        assert twice.override is None
        assert twice.overrides_used == 2

    def test_zero_uses_rejected(self):
        with pytest.raises(ValueError):
            SessionState().with_override("ok", uses=0)

    def test_transition_keeps_phase_since_when_unchanged(self):
        ready = SessionState().transition_to(Phase.READY)
        again = ready.transition_to(Phase.READY)
        assert again.phase_since == ready.phase_since
