"""Unit tests for the fetch state machine."""

import pytest

from refetch.fetch.state_machine import (
    TERMINAL_STATES,
    FetchState,
    FetchStateMachine,
    FetchStateTransitionError,
)


def walk(sm: FetchStateMachine, *states: FetchState) -> None:
    """Apply a sequence of transitions."""
    for state in states:
        sm.transition_to(state)


class TestFetchState:
    """Tests for FetchState enum."""

    def test_terminal_states(self) -> None:
        """Verify the terminal states."""
        assert TERMINAL_STATES == {
            FetchState.CHANGED,
            FetchState.UNCHANGED,
            FetchState.FAILED,
        }

    def test_state_count(self) -> None:
        """Verify exactly 11 states exist."""
        assert len(FetchState) == 11


class TestFetchStateMachine:
    """Tests for FetchStateMachine."""

    def test_initial_state(self) -> None:
        """State machine starts in CHECK_CACHE."""
        sm = FetchStateMachine("key")

        assert sm.state == FetchState.CHECK_CACHE
        assert sm.cache_key == "key"
        assert not sm.is_terminal

    def test_full_changed_path(self) -> None:
        """The buffered pipeline reaches CHANGED through every stage."""
        sm = FetchStateMachine("key")

        walk(
            sm,
            FetchState.COOLDOWN_CHECK,
            FetchState.BUILD_CONDITIONAL_HEADERS,
            FetchState.RETRIEVE,
            FetchState.PREPROCESS,
            FetchState.DECODE,
            FetchState.POSTPROCESS,
            FetchState.WRITE_CACHE,
            FetchState.CHANGED,
        )

        assert sm.is_terminal
        assert sm.last_active_state == FetchState.WRITE_CACHE

    def test_streaming_path_skips_content_stages(self) -> None:
        """RETRIEVE -> WRITE_CACHE is valid for streaming fetches."""
        sm = FetchStateMachine("key")

        walk(
            sm,
            FetchState.COOLDOWN_CHECK,
            FetchState.BUILD_CONDITIONAL_HEADERS,
            FetchState.RETRIEVE,
            FetchState.WRITE_CACHE,
            FetchState.CHANGED,
        )

        assert sm.state == FetchState.CHANGED

    def test_cooldown_terminates_unchanged(self) -> None:
        """COOLDOWN_CHECK -> UNCHANGED keeps the last active state."""
        sm = FetchStateMachine("key")

        walk(sm, FetchState.COOLDOWN_CHECK, FetchState.UNCHANGED)

        assert sm.state == FetchState.UNCHANGED
        assert sm.last_active_state == FetchState.COOLDOWN_CHECK

    @pytest.mark.parametrize(
        "stage",
        [FetchState.PREPROCESS, FetchState.POSTPROCESS],
    )
    def test_hash_stages_can_end_unchanged(self, stage: FetchState) -> None:
        """Hash comparison stages may end the fetch as unchanged."""
        sm = FetchStateMachine("key", initial_state=stage)

        sm.transition_to(FetchState.UNCHANGED)

        assert sm.last_active_state == stage

    def test_decode_cannot_end_unchanged(self) -> None:
        """DECODE -> UNCHANGED is invalid."""
        sm = FetchStateMachine("key", initial_state=FetchState.DECODE)

        with pytest.raises(FetchStateTransitionError) as exc_info:
            sm.transition_to(FetchState.UNCHANGED)

        assert exc_info.value.from_state == FetchState.DECODE
        assert exc_info.value.to_state == FetchState.UNCHANGED

    def test_cache_write_cannot_fail(self) -> None:
        """WRITE_CACHE only leads to CHANGED."""
        sm = FetchStateMachine("key", initial_state=FetchState.WRITE_CACHE)

        assert not sm.can_transition_to(FetchState.FAILED)
        assert sm.can_transition_to(FetchState.CHANGED)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES))
    def test_terminal_states_have_no_exits(self, terminal: FetchState) -> None:
        """Terminal states cannot transition anywhere."""
        sm = FetchStateMachine("key", initial_state=terminal)

        for target in FetchState:
            assert not sm.can_transition_to(target)

    def test_skipping_stages_rejected(self) -> None:
        """CHECK_CACHE -> RETRIEVE is invalid."""
        sm = FetchStateMachine("key")

        with pytest.raises(FetchStateTransitionError, match="CHECK_CACHE -> RETRIEVE"):
            sm.transition_to(FetchState.RETRIEVE)
        assert sm.state == FetchState.CHECK_CACHE
