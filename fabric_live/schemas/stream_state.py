"""Common enums used across schemas."""

from enum import Enum


class StreamState(str, Enum):
    """Live stream session states.

    State Transition Flow:

    INACTIVE -> STOPPED -> STARTING -> RUNNING <-> STALLED
                   ^          |           |          |
                   +----------+-----------+----------+  (stop)
    {STOPPED, STARTING, RUNNING, STALLED} -> TERMINATED (terminate)
    TERMINATED -> STOPPED (create, with a new edge write token)

    State Descriptions:
    - INACTIVE: No edge write token, or a token whose recording never began.
    - STOPPED: Recording exists but nothing is listening for the source feed.
    - STARTING: LRO listening, no media finalized yet.
    - RUNNING: LRO running and parts are being finalized.
    - STALLED: LRO running but no part finalized within the stall threshold.
    - TERMINATED: LRO ended. A new session (edge write token) is needed to record again.

    States are never stored; they are recomputed from metadata and the LRO
    status on every call.
    """

    INACTIVE = "inactive"
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STALLED = "stalled"
    TERMINATED = "terminated"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def active_states(cls) -> list["StreamState"]:
        """States in which the current edge write token holds a live session."""
        return [
            StreamState.STOPPED,
            StreamState.STARTING,
            StreamState.RUNNING,
            StreamState.STALLED,
        ]

    @classmethod
    def recording_states(cls) -> list["StreamState"]:
        """States in which the LRO is up and can be stopped."""
        return [
            StreamState.STARTING,
            StreamState.RUNNING,
            StreamState.STALLED,
        ]


class LroState(str, Enum):
    """States reported by the ingest engine for a recording LRO."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    TERMINATED = "terminated"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | None) -> "LroState":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


__all__ = ["LroState", "StreamState"]
