"""Playout format and DRM selection for a stream object."""

from loguru import logger

from fabric_live.utils.stream_errors import StreamErrorCode

from ._base import BaseService
from ._status import StatusOperations
from .stream_models import StreamInitResponse
from .stream_state_machine import StreamStateMachine

_HLS = {"type": "ProtoHls"}

PLAYOUT_FORMATS: dict[str, dict] = {
    "hls-clear": {"drm": None, "protocol": _HLS},
    "hls-aes128": {"drm": {"type": "DrmAes128"}, "protocol": _HLS},
    "hls-sample-aes": {"drm": {"type": "DrmSampleAes"}, "protocol": _HLS},
    "hls-fairplay": {"drm": {"type": "DrmFairplay"}, "protocol": _HLS},
}


def select_playout_formats(drm: bool = False, formats: str | None = None) -> tuple[dict, bool]:
    """Pick playout formats from the DRM flag or an explicit comma-separated list.

    An explicit list implies DRM; it stays optional only when hls-clear is listed.

    Returns:
        (playout formats by name, drm_optional)

    Raises:
        ValueError: On an unknown format name
    """
    if formats:
        names = [name.strip() for name in formats.split(",") if name.strip()]
        unknown = [name for name in names if name not in PLAYOUT_FORMATS]
        if unknown or not names:
            raise ValueError(f"unknown playout formats: {', '.join(unknown) or formats}")
        return {name: PLAYOUT_FORMATS[name] for name in names}, "hls-clear" in names

    if not drm:
        return {"hls-clear": PLAYOUT_FORMATS["hls-clear"]}, True

    return {
        name: playout for name, playout in PLAYOUT_FORMATS.items() if playout["drm"] is not None
    }, False


class OfferingOperations(BaseService):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._status = StatusOperations(self.fabric, self.cfg, self._clock)

    async def initialize(
        self,
        name: str,
        *,
        drm: bool = False,
        formats: str | None = None,
    ) -> StreamInitResponse:
        """Record the playout formats and DRM setting of the stream object."""
        ref = await self.resolve_stream_ref(name)
        status = await self._status.status_for_ref(ref)
        if not StreamStateMachine.can_create(status.state):
            return StreamInitResponse(
                name=name,
                state=status.state,
                errcode=StreamErrorCode.E_CONFLICT,
                error="stream still active - must terminate first",
            )

        try:
            playout_formats, drm_optional = select_playout_formats(drm, formats)
        except ValueError as e:
            return StreamInitResponse(
                name=name,
                state=status.state,
                errcode=StreamErrorCode.E_INVALID_REQUEST,
                error=str(e),
            )

        logger.info("Stream {} init formats={} drm_optional={}", name, list(playout_formats), drm_optional)
        ctx, _ = await self.load_context(ref)
        node = self.node(ctx)
        write_token = await node.create_write_token(ref.library_id, ref.object_id)
        await node.merge_metadata(
            ref.library_id,
            write_token,
            {
                "live_recording": {
                    "playout_config": {
                        "playout_formats": playout_formats,
                        "drm_optional": drm_optional,
                    }
                }
            },
        )
        object_hash = await node.finalize(
            ref.library_id,
            write_token,
            commit_message=f"Set playout formats {', '.join(playout_formats)}",
        )

        return StreamInitResponse(
            name=name,
            object_id=ref.object_id,
            hash=object_hash,
            playout_formats=list(playout_formats),
            state="initialized",
        )
