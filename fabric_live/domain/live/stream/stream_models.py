"""Stream domain models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from fabric_live.schemas import StreamState
from fabric_live.services.fabric.fabric_schemas import Insertion
from fabric_live.utils.stream_errors import StreamErrorCode


class StreamRef(BaseModel):
    """A stream name resolved to its content object."""

    name: str
    library_id: str
    object_id: str

    model_config = ConfigDict(frozen=True)


class SessionContext(BaseModel):
    """Per-call addressing for one object, rebuilt from its metadata on every call."""

    ref: StreamRef
    fabric_api: str
    edge_write_token: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def has_session(self) -> bool:
        return bool(self.edge_write_token)


class StreamResult(BaseModel):
    """Fields shared by every operation result.

    Conflicts, missing preconditions and poll timeouts are reported here
    rather than raised.
    """

    name: str | None = None
    state: StreamState | str | None = None
    errcode: StreamErrorCode | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.errcode is None


class RecordingPeriod(BaseModel):
    """Read-only view of the most recent recording period."""

    lro_handle: str | None = None
    recording_sequence: int
    activation_time_epoch_sec: int = 0
    start_time_epoch_sec: int = 0
    start_time_text: str | None = None
    end_time_epoch_sec: int = 0
    end_time_text: str | None = None
    video_parts: int = 0
    video_last_part_finalized_epoch_sec: float = 0
    video_since_last_finalize_sec: float = 0


class InsertionView(BaseModel):
    insertion_time: float
    duration: float | None = None
    target: str | None = None


class StreamStatus(StreamResult):
    """Status summary of a stream and its current session."""

    library_id: str | None = None
    object_id: str | None = None
    fabric_api: str | None = None
    url: str | None = None
    edge_write_token: str | None = None
    # By convention the stream ID is the edge write token
    stream_id: str | None = None
    recording_period_sequence: int | None = None
    tlro: str | None = None
    recording_period: RecordingPeriod | None = None
    lro_status_url: str | None = None
    insertions: list[InsertionView] | None = None


class StreamCreateResponse(StreamResult):
    object_id: str | None = None
    library_id: str | None = None
    hash: str | None = None
    stream_id: str | None = None
    edge_write_token: str | None = None
    fabric_api: str | None = None
    curl_commands: list[str] | None = None
    # Status after the start that create --start chains into
    started: StreamStatus | None = None


class StreamTerminateResponse(StreamResult):
    edge_write_token: str | None = None
    hash: str | None = None


class InsertionResult(StreamResult):
    errors: list[str] = Field(default_factory=list)
    insertions: list[Insertion] = Field(default_factory=list)


class StreamInitResponse(StreamResult):
    object_id: str | None = None
    hash: str | None = None
    playout_formats: list[str] | None = None


class StreamSummaryResponse(BaseModel):
    streams: dict[str, StreamStatus] = Field(default_factory=dict)
    counts: dict[str, int] = Field(default_factory=dict)


class StreamOp(str, Enum):
    """Operations within the current session (same edge write token)."""

    START = "start"
    STOP = "stop"
    # Stop the current LRO and start a new recording period
    RESET = "reset"

    def __str__(self) -> str:
        return self.value
