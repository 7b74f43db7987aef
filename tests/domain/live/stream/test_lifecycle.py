"""Tests for LifecycleOperations: create, start/stop/reset and terminate."""

from unittest.mock import AsyncMock, patch

from fabric_live.domain.live.stream.stream_models import StreamCreateResponse
from fabric_live.schemas import StreamState
from fabric_live.services.fabric import FabricClient
from fabric_live.utils.stream_errors import RemoteUnavailableError, StreamErrorCode
from tests.fixtures.fabric_fixtures import OBJECT_ID, STREAM, current_handle


def status_polls(mock_fabric) -> int:
    return len([call for call in mock_fabric.calls if "/call/live/status/" in call[1]])


async def start_running(service, mock_fabric) -> str:
    await service.create(STREAM, start=True)
    handle = current_handle(mock_fabric)
    mock_fabric.finalize_part(handle)
    return handle


class TestCreate:
    """Tests for StreamService.create."""

    async def test_create_opens_edge_write_token(self, service, mock_fabric):
        """Test create publishes the new edge write token in the object metadata."""
        # Act
        result = await service.create(STREAM)

        # Assert
        assert isinstance(result, StreamCreateResponse)
        assert result.ok
        assert result.state == StreamState.STOPPED
        assert result.object_id == OBJECT_ID
        assert result.stream_id == result.edge_write_token
        assert result.edge_write_token in mock_fabric.tokens
        assert result.curl_commands is None

        latest = mock_fabric.latest_meta(OBJECT_ID)["live_recording"]
        assert latest["fabric_config"]["edge_write_token"] == result.edge_write_token
        assert latest["status"] == {"edge_write_token": result.edge_write_token, "state": "active"}
        assert mock_fabric.versions[result.hash]["publish"] is True

    async def test_create_show_curl(self, service):
        result = await service.create(STREAM, show_curl=True)

        assert result.curl_commands[0] == 'export AUTH_HEADER="Authorization: Bearer test-token"'
        assert any(cmd.endswith("/call/live/start | jq") for cmd in result.curl_commands)

    async def test_create_and_start(self, service, mock_fabric):
        """Test create --start reports the state of the started stream."""
        result = await service.create(STREAM, start=True)

        assert isinstance(result, StreamCreateResponse)
        assert result.state == StreamState.STARTING
        assert result.started.state == StreamState.STARTING
        assert result.started.tlro == current_handle(mock_fabric)
        assert result.started.edge_write_token == result.edge_write_token

    async def test_create_start_keeps_hash_and_curl_commands(self, service, mock_fabric):
        """Test create --start --show_curl still returns the object hash and curl commands."""
        # Act
        result = await service.create(STREAM, start=True, show_curl=True)

        # Assert
        assert result.ok
        assert result.state == StreamState.STARTING
        assert result.hash == mock_fabric.objects[OBJECT_ID]["latest"]
        assert result.curl_commands[0] == 'export AUTH_HEADER="Authorization: Bearer test-token"'
        assert any(result.hash in cmd for cmd in result.curl_commands)

    async def test_create_start_failure_is_reported(self, service, mock_fabric):
        with patch.object(
            FabricClient,
            "start_lro",
            new_callable=AsyncMock,
            side_effect=RemoteUnavailableError("POST live/start returned 500", status_code=500),
        ):
            result = await service.create(STREAM, start=True)

        assert result.errcode == StreamErrorCode.E_PRECONDITION
        assert result.edge_write_token in mock_fabric.tokens
        assert result.started.errcode == StreamErrorCode.E_PRECONDITION

    async def test_create_while_active_is_conflict(self, service, mock_fabric):
        """Test create is refused while the current session is active."""
        # Arrange
        first = await service.create(STREAM, start=True)

        # Act
        result = await service.create(STREAM)

        # Assert
        assert result.errcode == StreamErrorCode.E_CONFLICT
        assert result.error == "stream still active - must terminate first"
        assert result.state == StreamState.STARTING
        assert list(mock_fabric.tokens) == [first.edge_write_token]

    async def test_create_after_terminated_lro(self, service, mock_fabric):
        first = await service.create(STREAM, start=True)
        mock_fabric.lros[current_handle(mock_fabric)]["state"] = "terminated"

        result = await service.create(STREAM)

        assert result.ok
        assert result.edge_write_token != first.edge_write_token


class TestStartStopReset:
    """Tests for StreamService.start_or_stop_or_reset."""

    async def test_stop_when_inactive_returns_immediately(self, service, mock_fabric):
        """Test stop on an INACTIVE stream issues no call beyond the status check."""
        # Act
        result = await service.stop(STREAM)

        # Assert
        assert result.state == StreamState.INACTIVE
        assert result.errcode is None
        assert mock_fabric.calls == [("GET", f"{OBJECT_ID}/meta/")]

    async def test_stop_twice_is_idempotent(self, service, mock_fabric):
        """Test a second stop leaves the stream TERMINATED without error."""
        await start_running(service, mock_fabric)

        first = await service.stop(STREAM)
        second = await service.stop(STREAM)

        assert first.state == StreamState.TERMINATED
        assert first.errcode is None
        assert second.state == StreamState.TERMINATED
        assert second.errcode is None

    async def test_stop_waits_for_termination(self, service, mock_fabric):
        """Test stop keeps polling while the LRO reports running, then sees it terminate."""
        # Arrange
        handle = await start_running(service, mock_fabric)
        mock_fabric.lros[handle]["ignore_stop"] = True
        mock_fabric.lros[handle]["script"] = ["running"] * 4 + ["terminated"]
        mock_fabric.calls.clear()

        # Act
        result = await service.stop(STREAM)

        # Assert
        assert result.state == StreamState.TERMINATED
        assert result.errcode is None
        # Initial check, 3 running polls, then terminated
        assert status_polls(mock_fabric) == 5

    async def test_stop_gives_up_after_max_attempts(self, service, mock_fabric):
        """Test an LRO that never terminates returns the last status with a timeout code."""
        # Arrange
        handle = await start_running(service, mock_fabric)
        mock_fabric.lros[handle]["ignore_stop"] = True
        mock_fabric.calls.clear()

        # Act
        result = await service.stop(STREAM)

        # Assert
        assert result.state == StreamState.RUNNING
        assert result.errcode == StreamErrorCode.E_TERMINATION_TIMEOUT
        assert result.error == "failed to terminate - last state running"
        assert status_polls(mock_fabric) == 11

    async def test_start_when_active_is_noop(self, service, mock_fabric):
        await start_running(service, mock_fabric)

        result = await service.start(STREAM)

        assert result.state == StreamState.RUNNING
        assert len(mock_fabric.lros) == 1

    async def test_start_when_stopped_starts_new_period(self, service, mock_fabric):
        """Test start on a STOPPED stream issues live/start in the same edge write token."""
        # Arrange
        first_handle = await start_running(service, mock_fabric)
        mock_fabric.lros[first_handle]["state"] = "stopped"
        assert (await service.status(STREAM)).state == StreamState.STOPPED
        edge_token = list(mock_fabric.tokens)[0]

        # Act
        result = await service.start(STREAM)

        # Assert
        assert result.ok
        assert result.state == StreamState.STARTING
        assert result.edge_write_token == edge_token
        assert result.recording_period_sequence == 2
        assert result.tlro != first_handle
        assert len(mock_fabric.lros) == 2
        assert f"{edge_token}/call/live/stop/{first_handle}" not in [call[1] for call in mock_fabric.calls]

    async def test_start_without_session_is_precondition(self, service, mock_fabric):
        """Test start on an object with no edge write token is refused."""
        result = await service.start(STREAM)

        assert result.errcode == StreamErrorCode.E_PRECONDITION
        assert result.error == "LRO start failed - must create a stream first"
        assert mock_fabric.lros == {}

    async def test_start_rejected_by_node_is_precondition(self, service):
        await service.create(STREAM)

        with patch.object(
            FabricClient,
            "start_lro",
            new_callable=AsyncMock,
            side_effect=RemoteUnavailableError("POST live/start returned 500", status_code=500),
        ) as mock_start:
            result = await service.start(STREAM)

        mock_start.assert_called_once()
        assert result.errcode == StreamErrorCode.E_PRECONDITION
        assert result.state == StreamState.INACTIVE

    async def test_reset_starts_a_new_recording_period(self, service, mock_fabric):
        """Test reset stops the LRO and starts another in the same edge write token."""
        # Arrange
        first_handle = await start_running(service, mock_fabric)
        created_token = list(mock_fabric.tokens)[0]

        # Act
        result = await service.reset(STREAM)

        # Assert
        assert result.state == StreamState.STARTING
        assert result.edge_write_token == created_token
        assert result.recording_period_sequence == 2
        assert result.tlro != first_handle
        assert mock_fabric.lros[first_handle]["state"] == "terminated"

    async def test_unknown_operation_is_invalid_request(self, service, mock_fabric):
        result = await service.start_or_stop_or_reset(STREAM, "pause")

        assert result.errcode == StreamErrorCode.E_INVALID_REQUEST
        assert mock_fabric.calls == []


class TestTerminate:
    """Tests for StreamService.terminate."""

    async def test_terminate_without_session(self, service):
        result = await service.terminate(STREAM)

        assert result.state == StreamState.INACTIVE
        assert result.errcode == StreamErrorCode.E_PRECONDITION
        assert result.error == "no active streams - must create a stream first"

    async def test_terminate_running_stream(self, service, mock_fabric):
        """Test terminate stops the LRO and finalizes the edge token without publishing."""
        # Arrange
        handle = await start_running(service, mock_fabric)
        edge_token = list(mock_fabric.tokens)[0]
        published = mock_fabric.objects[OBJECT_ID]["latest"]

        # Act
        result = await service.terminate(STREAM)

        # Assert
        assert result.ok
        assert result.state == StreamState.TERMINATED
        assert result.edge_write_token == edge_token
        assert mock_fabric.lros[handle]["state"] == "terminated"
        assert edge_token not in mock_fabric.tokens

        assert mock_fabric.objects[OBJECT_ID]["latest"] == published
        version = mock_fabric.versions[result.hash]
        assert version["publish"] is False
        assert version["commit_message"] == "Finalize live stream - stop time 1700000000"
        meta = version["meta"]
        assert meta["recording_stop_time"] == 1700000000
        assert meta["live_recording"]["status"] == {
            "state": "terminated",
            "recording_stop_time": 1700000000,
        }
        assert meta["live_recording"]["fabric_config"]["edge_write_token"] == ""

    async def test_terminate_then_status_and_create(self, service, mock_fabric):
        """Test the object still names the closed edge token, which reads as INACTIVE."""
        # Arrange
        await start_running(service, mock_fabric)
        terminated = await service.terminate(STREAM)
        live = mock_fabric.latest_meta(OBJECT_ID)["live_recording"]
        assert live["fabric_config"]["edge_write_token"] == terminated.edge_write_token

        # Act
        status = await service.status(STREAM)
        created = await service.create(STREAM)

        # Assert
        assert status.state == StreamState.INACTIVE
        assert status.edge_write_token == terminated.edge_write_token
        assert status.tlro is None
        assert created.ok
        assert created.edge_write_token != terminated.edge_write_token
        live = mock_fabric.latest_meta(OBJECT_ID)["live_recording"]
        assert live["fabric_config"]["edge_write_token"] == created.edge_write_token

    async def test_terminate_never_started_session(self, service, mock_fabric):
        """Test a session whose recording never began is closed without an LRO stop."""
        await service.create(STREAM)

        result = await service.terminate(STREAM)

        assert result.state == StreamState.TERMINATED
        assert mock_fabric.tokens == {}

    async def test_terminate_timeout_keeps_session_open(self, service, mock_fabric):
        handle = await start_running(service, mock_fabric)
        mock_fabric.lros[handle]["ignore_stop"] = True

        result = await service.terminate(STREAM)

        assert result.errcode == StreamErrorCode.E_TERMINATION_TIMEOUT
        assert len(mock_fabric.tokens) == 1
