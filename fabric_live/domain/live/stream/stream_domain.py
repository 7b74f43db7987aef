"""Stream domain service - live recording sessions on a fabric ingest node."""

from collections.abc import Callable

from fabric_live.app_config import AppEnvironConfig, get_app_environ_config
from fabric_live.services.fabric import FabricClient, get_fabric_client

from ._insertions import InsertionOperations
from ._lifecycle import LifecycleOperations
from ._offering import OfferingOperations
from ._status import StatusOperations
from .stream_models import (
    InsertionResult,
    StreamCreateResponse,
    StreamInitResponse,
    StreamOp,
    StreamStatus,
    StreamSummaryResponse,
    StreamTerminateResponse,
)


class StreamService:
    """Live stream control service.

    Every call re-reads the object metadata; nothing is cached between calls.
    """

    def __init__(
        self,
        fabric: FabricClient | None = None,
        cfg: AppEnvironConfig | None = None,
        clock: Callable[[], float] | None = None,
    ):
        fabric = fabric or get_fabric_client()
        cfg = cfg or get_app_environ_config()
        self._status = StatusOperations(fabric, cfg, clock)
        self._lifecycle = LifecycleOperations(fabric, cfg, clock)
        self._insertions = InsertionOperations(fabric, cfg, clock)
        self._offering = OfferingOperations(fabric, cfg, clock)

    # ==================== STATUS ====================

    async def status(self, name: str, *, stop_lro: bool = False) -> StreamStatus:
        """Derive the status of the stream's current session.

        Raises NotFoundError, ConfigurationError or RemoteUnavailableError.
        """
        return await self._status.derive_status(name, stop_lro=stop_lro)

    async def summary(self) -> StreamSummaryResponse:
        """Status of every stream in the stream table."""
        return await self._status.summary()

    # ==================== SESSIONS ====================

    async def create(
        self,
        name: str,
        *,
        start: bool = False,
        show_curl: bool = False,
    ) -> StreamCreateResponse:
        """Create a new session (edge write token).

        Returns a conflict result if a session is still active.
        """
        return await self._lifecycle.create(name, start=start, show_curl=show_curl)

    async def start(self, name: str) -> StreamStatus:
        return await self._lifecycle.start_or_stop_or_reset(name, StreamOp.START)

    async def stop(self, name: str) -> StreamStatus:
        return await self._lifecycle.start_or_stop_or_reset(name, StreamOp.STOP)

    async def reset(self, name: str) -> StreamStatus:
        """Stop the LRO and start a new recording period in the same session."""
        return await self._lifecycle.start_or_stop_or_reset(name, StreamOp.RESET)

    async def start_or_stop_or_reset(self, name: str, op: StreamOp | str) -> StreamStatus:
        return await self._lifecycle.start_or_stop_or_reset(name, op)

    async def terminate(self, name: str) -> StreamTerminateResponse | StreamStatus:
        """Stop the session and finalize its edge write token without publishing."""
        return await self._lifecycle.stop_session(name)

    # ==================== INSERTIONS ====================

    async def upsert_insertion(
        self,
        name: str,
        insertion_time: float,
        duration: float,
        target_hash: str,
    ) -> InsertionResult:
        return await self._insertions.upsert_insertion(name, insertion_time, duration, target_hash)

    async def remove_insertion(self, name: str, insertion_time: float) -> InsertionResult:
        return await self._insertions.remove_insertion(name, insertion_time)

    # ==================== OFFERING ====================

    async def initialize(
        self,
        name: str,
        *,
        drm: bool = False,
        formats: str | None = None,
    ) -> StreamInitResponse:
        """Set the playout formats; only allowed with no active session."""
        return await self._offering.initialize(name, drm=drm, formats=formats)
