from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from fabric_live.schemas import LroState


class FabricConfig(BaseModel):
    """Where the object records and which write token holds the current session."""

    ingress_node_api: str | None = Field(None, description="Ingest node URL or hostname")
    ingress_node_id: str | None = Field(None, description="Ingest node ID")
    edge_write_token: str = Field("", description="Write token of the active session, empty if none")

    model_config = ConfigDict(extra="ignore")


class RecordingParams(BaseModel):
    origin_url: str | None = Field(None, description="Source feed URL")

    model_config = ConfigDict(extra="ignore")


class RecordingConfig(BaseModel):
    recording_params: RecordingParams = Field(default_factory=RecordingParams)

    model_config = ConfigDict(extra="ignore")


class Insertion(BaseModel):
    """One scheduled interleave of alternate content into the live timeline.

    Unknown keys are kept so that a read-modify-write of the interleave list
    does not drop fields written by other tools.
    """

    insertion_time: float = Field(..., description="Seconds from stream start")
    duration: float | None = Field(None, description="Seconds")
    audio_abr_duration: float | None = None
    video_abr_duration: float | None = None
    playout: str | None = Field(None, description="Playable target, e.g. /qfab/<hash>/rep/playout")

    model_config = ConfigDict(extra="allow")


class PlayoutConfig(BaseModel):
    interleaves: list[Insertion] | None = None

    model_config = ConfigDict(extra="ignore")


class VideoFinalizedPartsInfo(BaseModel):
    n_parts: int = 0
    last_finalization_time: int = Field(0, description="Microseconds since epoch, 0 if never")

    model_config = ConfigDict(extra="ignore")


class LiveOfferingPeriod(BaseModel):
    """Engine-written record of one recording period."""

    live_recording_handle: str | None = None
    recording_start_time_epoch_sec: int = 0
    start_time_epoch_sec: int = 0
    end_time_epoch_sec: int = 0
    video_finalized_parts_info: VideoFinalizedPartsInfo = Field(
        default_factory=VideoFinalizedPartsInfo
    )

    model_config = ConfigDict(extra="ignore")


class Recordings(BaseModel):
    recording_sequence: int | None = None
    live_offering: list[LiveOfferingPeriod] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class LiveRecordingMeta(BaseModel):
    fabric_config: FabricConfig = Field(default_factory=FabricConfig)
    recording_config: RecordingConfig = Field(default_factory=RecordingConfig)
    playout_config: PlayoutConfig = Field(default_factory=PlayoutConfig)
    recordings: Recordings | None = None
    status: dict | None = None

    model_config = ConfigDict(extra="ignore")


class ObjectMetadata(BaseModel):
    """Read view of a content object's metadata document."""

    live_recording: LiveRecordingMeta | None = None

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_raw(cls, raw: dict | None) -> ObjectMetadata:
        return cls.model_validate(raw or {})


class WriteTokenResponse(BaseModel):
    write_token: str

    model_config = ConfigDict(extra="ignore")


class FinalizeResponse(BaseModel):
    hash: str

    model_config = ConfigDict(extra="ignore")


class LibraryResponse(BaseModel):
    library_id: str

    model_config = ConfigDict(extra="ignore")


class LroStartResponse(BaseModel):
    handle: str | None = None

    model_config = ConfigDict(extra="allow")


class LroReported(BaseModel):
    """The LRO status endpoint answered."""

    kind: Literal["reported"] = "reported"
    state: LroState
    raw_state: str | None = None


class LroUnreachable(BaseModel):
    """The LRO status endpoint could not be reached or answered non-2xx."""

    kind: Literal["unreachable"] = "unreachable"
    status_code: int | None = None
    detail: str | None = None


LroObservation = Annotated[LroReported | LroUnreachable, Field(discriminator="kind")]


class RemoteCallOutcome(BaseModel):
    """Result of a best-effort remote call whose failure is not an error."""

    status: Literal["ok", "ignored_error"]
    detail: str | None = None

    @property
    def ignored(self) -> bool:
        return self.status == "ignored_error"

    @classmethod
    def ok(cls) -> RemoteCallOutcome:
        return cls(status="ok")

    @classmethod
    def ignored_error(cls, detail: str) -> RemoteCallOutcome:
        return cls(status="ignored_error", detail=detail)
