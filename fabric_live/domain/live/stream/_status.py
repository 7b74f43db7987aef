"""Stream status derivation."""

from collections import Counter
from datetime import datetime, timezone

from loguru import logger
from pydantic import ValidationError

from fabric_live.schemas import StreamState
from fabric_live.services.fabric.fabric_schemas import (
    LiveOfferingPeriod,
    LroUnreachable,
    ObjectMetadata,
)
from fabric_live.utils.stream_errors import ConfigurationError, StreamError

from ._base import BaseService, load_stream_table
from .stream_models import (
    InsertionView,
    RecordingPeriod,
    StreamRef,
    StreamStatus,
    StreamSummaryResponse,
)
from .stream_state_machine import reconcile_state


def _epoch_text(epoch_sec: float) -> str:
    return datetime.fromtimestamp(epoch_sec, tz=timezone.utc).isoformat()


def build_recording_period(
    period: LiveOfferingPeriod, recording_sequence: int, now: float
) -> RecordingPeriod:
    parts = period.video_finalized_parts_info
    last_finalized_sec = parts.last_finalization_time / 1_000_000
    return RecordingPeriod(
        lro_handle=period.live_recording_handle,
        recording_sequence=recording_sequence,
        activation_time_epoch_sec=period.recording_start_time_epoch_sec,
        start_time_epoch_sec=period.start_time_epoch_sec,
        start_time_text=_epoch_text(period.start_time_epoch_sec),
        end_time_epoch_sec=period.end_time_epoch_sec,
        end_time_text=(
            None if period.end_time_epoch_sec == 0 else _epoch_text(period.end_time_epoch_sec)
        ),
        video_parts=parts.n_parts,
        video_last_part_finalized_epoch_sec=last_finalized_sec,
        video_since_last_finalize_sec=now - last_finalized_sec,
    )


class StatusOperations(BaseService):
    """Derives the state of a stream from its metadata and the live LRO."""

    async def derive_status(self, name: str, *, stop_lro: bool = False) -> StreamStatus:
        """Status of the current live stream session.

        Raises NotFoundError, ConfigurationError or RemoteUnavailableError.
        """
        ref = await self.resolve_stream_ref(name)
        return await self.status_for_ref(ref, stop_lro=stop_lro)

    async def status_for_ref(self, ref: StreamRef, *, stop_lro: bool = False) -> StreamStatus:
        """
        Derive the stream state for an already resolved stream.

        States:
        - inactive: no edge write token, or the recording never began
        - stopped: recording exists, LRO not listening (or unreachable)
        - starting: LRO running, nothing finalized yet
        - running: LRO running and parts are being finalized
        - stalled: LRO running, no part finalized within the stall threshold
        - terminated: LRO ended

        Args:
            ref: Resolved stream
            stop_lro: Also ask a running/stalled/starting LRO to stop (best effort)

        Returns:
            StreamStatus for the current session
        """
        ctx, meta = await self.load_context(ref)
        live = meta.live_recording

        status = StreamStatus(
            name=ref.name,
            library_id=ref.library_id,
            object_id=ref.object_id,
            fabric_api=ctx.fabric_api,
            url=live.recording_config.recording_params.origin_url,
            edge_write_token=ctx.edge_write_token,
            stream_id=ctx.edge_write_token,
        )

        if not ctx.has_session:
            status.state = StreamState.INACTIVE
            return status

        node = self.node(ctx)
        raw_edge = await node.read_metadata(
            ref.library_id, ref.object_id, write_token=ctx.edge_write_token
        )
        try:
            edge_live = ObjectMetadata.from_raw(raw_edge).live_recording
        except ValidationError as e:
            raise ConfigurationError(f"bad edge metadata for {ctx.edge_write_token}: {e}") from e

        recordings = edge_live.recordings if edge_live else None
        if recordings is None or recordings.recording_sequence is None:
            # Write token exists but a recording was never started
            status.state = StreamState.INACTIVE
            return status

        sequence = recordings.recording_sequence
        status.recording_period_sequence = sequence
        if not 1 <= sequence <= len(recordings.live_offering):
            logger.warning(
                "Stream {} recording_sequence {} has no matching period ({} recorded)",
                ref.name,
                sequence,
                len(recordings.live_offering),
            )
            status.state = StreamState.INACTIVE
            return status

        period = recordings.live_offering[sequence - 1]
        handle = period.live_recording_handle
        status.tlro = handle

        now = self.now()
        recording_period = build_recording_period(period, sequence, now)
        status.recording_period = recording_period
        if handle:
            status.lro_status_url = node.fabric_url(
                ref.library_id, ctx.edge_write_token, call=f"live/status/{handle}"
            )
        status.insertions = [
            InsertionView(
                insertion_time=insertion.insertion_time,
                duration=insertion.duration,
                target=insertion.playout,
            )
            for insertion in (edge_live.playout_config.interleaves or [])
        ]

        if handle:
            observation = await node.lro_status(ref.library_id, ctx.edge_write_token, handle)
        else:
            observation = LroUnreachable(detail="recording period has no LRO handle")
        state = reconcile_state(
            observation,
            last_finalization_time=period.video_finalized_parts_info.last_finalization_time,
            since_last_finalize=recording_period.video_since_last_finalize_sec,
            stall_threshold=self.cfg.STALL_THRESHOLD_SECONDS,
        )
        status.state = state

        if stop_lro and handle and state in StreamState.recording_states():
            outcome = await node.stop_lro(ref.library_id, ctx.edge_write_token, handle)
            logger.info("Stream {} LRO stop requested: {}", ref.name, outcome.status)

        return status

    async def summary(self) -> StreamSummaryResponse:
        """Status of every stream in the stream table, with per-state counts.

        A stream whose status cannot be derived is reported with its error
        instead of aborting the summary.
        """
        table = load_stream_table(self.cfg.LIVE_CONF_PATH)
        response = StreamSummaryResponse()
        counts: Counter[str] = Counter()

        for name in table:
            try:
                status = await self.derive_status(name)
            except StreamError as e:
                logger.warning("Summary: status of {} failed: {}", name, e)
                status = StreamStatus(name=name, errcode=e.errcode, error=e.errmesg)
            response.streams[name] = status
            counts[str(status.state) if status.state else "error"] += 1

        response.counts = dict(counts)
        return response
