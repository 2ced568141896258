"""State machine for a single conditional fetch."""

from enum import Enum

import structlog


logger = structlog.get_logger()


class FetchState(str, Enum):
    """State of one fetch pipeline.

    States represent the lifecycle of a single conditional fetch:
    - CHECK_CACHE: Loading the prior cache record
    - COOLDOWN_CHECK: Enforcing the minimum interval between fetches
    - BUILD_CONDITIONAL_HEADERS: Deriving If-None-Match / If-Modified-Since
    - RETRIEVE: Transport call and transport-level change heuristics
    - PREPROCESS: Preprocess hook and raw hash comparison
    - DECODE: Format decoder dispatch
    - POSTPROCESS: Postprocess hook and processed hash comparison
    - WRITE_CACHE: Persisting the successor record
    - CHANGED: Terminal, content new or updated
    - UNCHANGED: Terminal, nothing changed (cache-hit, no-change, cooldown)
    - FAILED: Terminal, fetch aborted with an error
    """

    CHECK_CACHE = "CHECK_CACHE"
    COOLDOWN_CHECK = "COOLDOWN_CHECK"
    BUILD_CONDITIONAL_HEADERS = "BUILD_CONDITIONAL_HEADERS"
    RETRIEVE = "RETRIEVE"
    PREPROCESS = "PREPROCESS"
    DECODE = "DECODE"
    POSTPROCESS = "POSTPROCESS"
    WRITE_CACHE = "WRITE_CACHE"
    CHANGED = "CHANGED"
    UNCHANGED = "UNCHANGED"
    FAILED = "FAILED"


TERMINAL_STATES = frozenset(
    {FetchState.CHANGED, FetchState.UNCHANGED, FetchState.FAILED}
)

# Valid state transitions
_VALID_TRANSITIONS: dict[FetchState, set[FetchState]] = {
    FetchState.CHECK_CACHE: {FetchState.COOLDOWN_CHECK, FetchState.FAILED},
    FetchState.COOLDOWN_CHECK: {
        FetchState.BUILD_CONDITIONAL_HEADERS,
        FetchState.UNCHANGED,
    },
    FetchState.BUILD_CONDITIONAL_HEADERS: {FetchState.RETRIEVE},
    # Streaming fetches go straight from RETRIEVE to WRITE_CACHE
    FetchState.RETRIEVE: {
        FetchState.PREPROCESS,
        FetchState.WRITE_CACHE,
        FetchState.UNCHANGED,
        FetchState.FAILED,
    },
    FetchState.PREPROCESS: {
        FetchState.DECODE,
        FetchState.UNCHANGED,
        FetchState.FAILED,
    },
    FetchState.DECODE: {FetchState.POSTPROCESS, FetchState.FAILED},
    FetchState.POSTPROCESS: {
        FetchState.WRITE_CACHE,
        FetchState.UNCHANGED,
        FetchState.FAILED,
    },
    # Cache write failures are logged, never fatal
    FetchState.WRITE_CACHE: {FetchState.CHANGED},
    FetchState.CHANGED: set(),  # Terminal state
    FetchState.UNCHANGED: set(),  # Terminal state
    FetchState.FAILED: set(),  # Terminal state
}


class FetchStateTransitionError(Exception):
    """Raised when an illegal state transition is attempted."""

    def __init__(
        self,
        cache_key: str,
        from_state: FetchState,
        to_state: FetchState,
    ) -> None:
        """Initialize the transition error.

        Args:
            cache_key: Cache identifier of the fetch.
            from_state: Current state.
            to_state: Attempted target state.
        """
        self.cache_key = cache_key
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal state transition for fetch '{cache_key}': "
            f"{from_state.value} -> {to_state.value}"
        )


class FetchStateMachine:
    """Tracks the state of one fetch pipeline.

    Enforces valid transitions and logs all state changes. The state a fetch
    was in right before terminating is kept as ``last_active_state`` so
    outcomes can report where the pipeline stopped.
    """

    def __init__(
        self,
        cache_key: str,
        initial_state: FetchState = FetchState.CHECK_CACHE,
    ) -> None:
        """Initialize the state machine.

        Args:
            cache_key: Cache identifier of the fetch.
            initial_state: Starting state.
        """
        self._cache_key = cache_key
        self._state = initial_state
        self._last_active_state = initial_state
        self._log = logger.bind(component="fetch_state", cache_key=cache_key)

    @property
    def cache_key(self) -> str:
        """Get the cache identifier."""
        return self._cache_key

    @property
    def state(self) -> FetchState:
        """Get the current state."""
        return self._state

    @property
    def last_active_state(self) -> FetchState:
        """Get the last non-terminal state reached."""
        return self._last_active_state

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        return self._state in TERMINAL_STATES

    def can_transition_to(self, target: FetchState) -> bool:
        """Check if a transition to the target state is valid.

        Args:
            target: The target state.

        Returns:
            True if the transition is valid.
        """
        return target in _VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: FetchState) -> None:
        """Transition to a new state.

        Args:
            target: The target state.

        Raises:
            FetchStateTransitionError: If the transition is invalid.
        """
        if not self.can_transition_to(target):
            self._log.error(
                "illegal_state_transition",
                from_state=self._state.value,
                to_state=target.value,
            )
            raise FetchStateTransitionError(
                cache_key=self._cache_key,
                from_state=self._state,
                to_state=target,
            )

        old_state = self._state
        self._state = target
        if target not in TERMINAL_STATES:
            self._last_active_state = target

        self._log.debug(
            "state_transition",
            from_state=old_state.value,
            to_state=target.value,
        )
