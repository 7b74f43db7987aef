"""Stream state machine and LRO status reconciliation."""

from loguru import logger

from fabric_live.schemas import LroState, StreamState
from fabric_live.services.fabric.fabric_schemas import LroReported, LroUnreachable

DEFAULT_STALL_THRESHOLD_SECONDS = 32.9


class StreamStateMachine:
    """State machine for live stream sessions.

    Nothing is stored: the state is derived on every call, so the table
    documents which changes an operation (or the ingest engine) may cause.

    State flow with triggers:
    - INACTIVE -> STOPPED (create: new edge write token)
    - STOPPED -> STARTING (start: LRO accepted, listening for the feed)
    - STARTING -> RUNNING (first part finalized)
    - RUNNING <-> STALLED (no part finalized within the stall threshold / feed resumes)
    - STOPPED/STARTING/RUNNING/STALLED -> STOPPED (stop)
    - STOPPED/STARTING/RUNNING/STALLED -> TERMINATED (terminate, or LRO ended)
    - TERMINATED -> STOPPED (create: new edge write token)
    """

    TRANSITIONS: dict[StreamState, set[StreamState]] = {
        StreamState.INACTIVE: {StreamState.STOPPED},
        StreamState.STOPPED: {
            StreamState.STARTING,
            StreamState.STOPPED,
            StreamState.TERMINATED,
        },
        StreamState.STARTING: {
            StreamState.RUNNING,
            StreamState.STOPPED,
            StreamState.TERMINATED,
        },
        StreamState.RUNNING: {
            StreamState.STALLED,
            StreamState.STOPPED,
            StreamState.TERMINATED,
        },
        StreamState.STALLED: {
            StreamState.RUNNING,
            StreamState.STOPPED,
            StreamState.TERMINATED,
        },
        StreamState.TERMINATED: {StreamState.STOPPED},
    }

    # States from which create/init are allowed
    CREATABLE_STATES: set[StreamState] = {StreamState.INACTIVE, StreamState.TERMINATED}

    @classmethod
    def can_transition(cls, current: StreamState, new: StreamState) -> bool:
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_active(cls, state: StreamState) -> bool:
        """Whether the current edge write token holds a session that must be stopped first."""
        return state not in cls.CREATABLE_STATES

    @classmethod
    def can_create(cls, state: StreamState) -> bool:
        return state in cls.CREATABLE_STATES

    @classmethod
    def get_valid_transitions(cls, state: StreamState) -> set[StreamState]:
        return cls.TRANSITIONS.get(state, set())


def reconcile_state(
    observation: LroReported | LroUnreachable,
    last_finalization_time: float,
    since_last_finalize: float,
    stall_threshold: float = DEFAULT_STALL_THRESHOLD_SECONDS,
) -> StreamState:
    """Combine the LRO status with recording freshness into a stream state.

    Args:
        observation: What the LRO status endpoint said, or that it was unreachable
        last_finalization_time: Time of the last finalized part, 0 if none yet
        since_last_finalize: Seconds since the last finalized part
        stall_threshold: Seconds without a finalized part before a running LRO is stalled

    Returns:
        Derived stream state
    """
    if isinstance(observation, LroUnreachable):
        return StreamState.STOPPED

    if observation.state == LroState.RUNNING:
        if last_finalization_time == 0:
            return StreamState.STARTING
        if since_last_finalize > stall_threshold:
            return StreamState.STALLED
        return StreamState.RUNNING
    if observation.state == LroState.STARTING:
        return StreamState.STARTING
    if observation.state == LroState.STOPPED:
        return StreamState.STOPPED
    if observation.state == LroState.TERMINATED:
        return StreamState.TERMINATED

    logger.warning("Unrecognized LRO state {!r}, treating as stopped", observation.raw_state)
    return StreamState.STOPPED
