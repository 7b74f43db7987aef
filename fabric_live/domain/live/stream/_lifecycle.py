"""Stream session lifecycle: create, start/stop/reset and terminate."""

import asyncio

from loguru import logger

from fabric_live.schemas import StreamState
from fabric_live.services.fabric import FabricClient
from fabric_live.utils.stream_errors import ConfigurationError, RemoteUnavailableError, StreamErrorCode

from ._base import BaseService
from ._status import StatusOperations
from .stream_models import (
    StreamCreateResponse,
    StreamOp,
    StreamRef,
    StreamStatus,
    StreamTerminateResponse,
)
from .stream_state_machine import StreamStateMachine


def build_curl_commands(
    node: FabricClient,
    library_id: str,
    object_hash: str,
    edge_write_token: str,
) -> list[str]:
    """Commands for inspecting a new stream by hand."""
    curl_cmd = 'curl -s -H "$AUTH_HEADER" '
    hash_url = node.fabric_url(library_id, object_hash)
    token_url = node.fabric_url(library_id, edge_write_token)
    commands = []
    if node.auth_token:
        commands.append(f'export AUTH_HEADER="Authorization: Bearer {node.auth_token}"')
    commands += [
        f"{curl_cmd}{hash_url}/meta | jq",
        f"{curl_cmd}{token_url}/meta | jq",
        f"{curl_cmd}-X POST {token_url}/call/live/start | jq",
        f"{curl_cmd}-X POST {token_url}/call/live/stop/HANDLE",
        f"{curl_cmd}{hash_url}/rep/live/default/options.json | jq",
        f"{hash_url}/rep/live/default/hls-sample-aes/playlist.m3u8",
    ]
    return commands


class LifecycleOperations(BaseService):
    """Drives a stream between states and waits for the ingest engine to converge."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._status = StatusOperations(self.fabric, self.cfg, self._clock)

    async def _wait_for_state(
        self,
        ref: StreamRef,
        status: StreamStatus,
        target: StreamState,
    ) -> tuple[StreamStatus, bool]:
        """Poll the stream status until it reaches ``target`` or the attempts run out.

        Returns:
            The last observed status and whether it reached the target
        """
        max_attempts = self.cfg.STATUS_MAX_ATTEMPTS
        attempts = 0
        while status.state != target and attempts < max_attempts:
            attempts += 1
            logger.info(
                "Stream {} waiting for {} - {} ({}/{})",
                ref.name,
                target,
                status.state,
                attempts,
                max_attempts,
            )
            await asyncio.sleep(self.cfg.STATUS_POLL_INTERVAL)
            status = await self._status.status_for_ref(ref)

        return status, status.state == target

    async def _stop_and_wait(self, ref: StreamRef, status: StreamStatus) -> StreamStatus:
        """Stop the current LRO and wait for it to terminate.

        A status that does not reach TERMINATED within the attempts is returned
        with E_TERMINATION_TIMEOUT.
        """
        logger.info("Stream {} stopping (state {})", ref.name, status.state)
        if status.tlro:
            node = self.fabric.for_node(status.fabric_api)
            outcome = await node.stop_lro(ref.library_id, status.edge_write_token, status.tlro)
            if outcome.ignored:
                logger.debug("Stream {} LRO stop: {}", ref.name, outcome.detail)

        status, terminated = await self._wait_for_state(ref, status, StreamState.TERMINATED)
        logger.info("Stream {} status after terminate - {}", ref.name, status.state)
        if not terminated:
            logger.warning("Stream {} failed to terminate", ref.name)
            status.errcode = StreamErrorCode.E_TERMINATION_TIMEOUT
            status.error = f"failed to terminate - last state {status.state}"
        return status

    async def create(
        self,
        name: str,
        *,
        start: bool = False,
        show_curl: bool = False,
    ) -> StreamCreateResponse:
        """Create a new live stream session (a new edge write token).

        Only allowed when no session is active. With ``start`` the new stream
        is started right away; the result then carries the state and any error
        of the start, with the full status in ``started``.
        """
        ref = await self.resolve_stream_ref(name)
        status = await self._status.status_for_ref(ref)
        if not StreamStateMachine.can_create(status.state):
            return StreamCreateResponse(
                name=name,
                state=status.state,
                errcode=StreamErrorCode.E_CONFLICT,
                error="stream still active - must terminate first",
            )

        logger.info("Stream {} create (start={}, show_curl={})", name, start, show_curl)
        ctx, _ = await self.load_context(ref)
        node = self.node(ctx)

        edge_token = await node.create_write_token(ref.library_id, ref.object_id)
        logger.info("Stream {} edge write token {}", name, edge_token)

        # Advertise the edge token in a separate, published version
        write_token = await node.create_write_token(ref.library_id, ref.object_id)
        await node.merge_metadata(
            ref.library_id,
            write_token,
            {
                "live_recording": {
                    "status": {
                        "edge_write_token": edge_token,
                        "state": "active",
                    },
                    "fabric_config": {
                        "edge_write_token": edge_token,
                    },
                }
            },
        )
        object_hash = await node.finalize(ref.library_id, write_token)
        logger.info("Stream {} object hash {}", name, object_hash)

        response = StreamCreateResponse(
            name=name,
            object_id=ref.object_id,
            library_id=ref.library_id,
            hash=object_hash,
            stream_id=edge_token,
            edge_write_token=edge_token,
            fabric_api=ctx.fabric_api,
            state=StreamState.STOPPED,
        )
        if show_curl:
            response.curl_commands = build_curl_commands(
                node, ref.library_id, object_hash, edge_token
            )

        if start:
            started = await self._start_or_stop_or_reset(ref, StreamOp.START)
            response.started = started
            response.state = started.state
            response.errcode = started.errcode
            response.error = started.error
        return response

    async def start_or_stop_or_reset(self, name: str, op: StreamOp | str) -> StreamStatus:
        """
        Start, stop or reset a stream within the current session.

        - start: start the LRO if not already active
        - stop: stop the LRO and wait until it is terminated
        - reset: stop the LRO, then start a new recording period in the same
          edge write token

        Returns:
            Stream status after the operation
        """
        try:
            op = StreamOp(op)
        except ValueError:
            return StreamStatus(
                name=name,
                errcode=StreamErrorCode.E_INVALID_REQUEST,
                error=f"unknown operation: {op}",
            )

        ref = await self.resolve_stream_ref(name)
        return await self._start_or_stop_or_reset(ref, op)

    async def _start_or_stop_or_reset(self, ref: StreamRef, op: StreamOp) -> StreamStatus:
        logger.info("Stream {} {}", ref.name, op)
        status = await self._status.status_for_ref(ref)

        if op == StreamOp.START:
            # A STOPPED stream falls through and is started again
            if status.state in StreamState.recording_states():
                return status
        elif StreamStateMachine.is_active(status.state):
            status = await self._stop_and_wait(ref, status)
            if status.errcode:
                return status

        if op == StreamOp.STOP:
            return status

        logger.info("Stream {} starting", ref.name)
        if not status.edge_write_token:
            return StreamStatus(
                name=ref.name,
                state=status.state,
                errcode=StreamErrorCode.E_PRECONDITION,
                error="LRO start failed - must create a stream first",
            )
        try:
            node = self.fabric.for_node(status.fabric_api)
            started = await node.start_lro(ref.library_id, status.edge_write_token)
            logger.info("Stream {} LRO start accepted, handle {}", ref.name, started.handle)
        except RemoteUnavailableError as e:
            logger.warning("Stream {} LRO start failed: {}", ref.name, e.errmesg)
            return StreamStatus(
                name=ref.name,
                state=status.state,
                errcode=StreamErrorCode.E_PRECONDITION,
                error="LRO start failed - must create a stream first",
            )

        status, starting = await self._wait_for_state(ref, status, StreamState.STARTING)
        if not starting:
            logger.warning("Stream {} not starting yet - last state {}", ref.name, status.state)
        logger.info("Stream {} status after start - {}", ref.name, status.state)
        return status

    async def stop_session(self, name: str) -> StreamTerminateResponse | StreamStatus:
        """Stop the live stream session and close the edge write token.

        The edge write token is finalized without publishing: its history is
        kept but it does not become the object's current version.
        """
        logger.info("Stream {} terminate", name)
        ref = await self.resolve_stream_ref(name)
        ctx, _ = await self.load_context(ref)

        if not ctx.has_session:
            return StreamTerminateResponse(
                name=name,
                state=StreamState.INACTIVE,
                errcode=StreamErrorCode.E_PRECONDITION,
                error="no active streams - must create a stream first",
            )

        status = await self._status.status_for_ref(ref)
        # A session whose recording never began has no LRO to stop
        if StreamStateMachine.is_active(status.state):
            status = await self._stop_and_wait(ref, status)
            if status.errcode:
                return status

        node = self.node(ctx)
        edge_meta = await node.read_metadata(
            ref.library_id, ref.object_id, write_token=ctx.edge_write_token
        )
        if edge_meta is None:
            edge_meta = {}
        if not isinstance(edge_meta, dict):
            raise ConfigurationError(f"bad edge metadata for {ctx.edge_write_token}")

        stop_time = int(self.now())
        edge_meta["recording_stop_time"] = stop_time
        logger.info(
            "Stream {} recording_start_time={} recording_stop_time={}",
            name,
            edge_meta.get("recording_start_time"),
            stop_time,
        )

        live = edge_meta.setdefault("live_recording", {})
        fabric_config = live.setdefault("fabric_config", {}) if isinstance(live, dict) else None
        if not isinstance(fabric_config, dict):
            raise ConfigurationError(f"bad edge live_recording for {ctx.edge_write_token}")

        live["status"] = {
            "state": str(StreamState.TERMINATED),
            "recording_stop_time": stop_time,
        }
        fabric_config["edge_write_token"] = ""

        await node.replace_metadata(ref.library_id, ctx.edge_write_token, edge_meta)
        version_hash = await node.finalize(
            ref.library_id,
            ctx.edge_write_token,
            publish=False,
            commit_message=f"Finalize live stream - stop time {stop_time}",
        )

        return StreamTerminateResponse(
            name=name,
            edge_write_token=ctx.edge_write_token,
            hash=version_hash,
            state=StreamState.TERMINATED,
        )
