"""Mock fabric, stream table and service fixtures shared by the test suite."""

import httpx
import orjson
import pytest

from fabric_live.app_config import AppEnvironConfig
from fabric_live.domain.live.stream import StreamService
from fabric_live.services.fabric import FabricClient
from tools.mock_fabric import MockFabric, create_app


NOW = 1_700_000_000.0
LIBRARY_ID = "ilib2f4tbTz9hWXmVtDs8Jc2Kd6q"
OBJECT_ID = "iq__3Hb4nGfu6ZJ9fXWjbY5W1GAKvXkV"
OTHER_OBJECT_ID = "iq__4UdaYp5Hh3yX9RXqPb7qA1C2bEzJ"
FABRIC_API_URL = "https://main.net955305.contentfabric.io"
INGRESS_NODE = "host-76-74-28-233.contentfabric.io"
STREAM = "studio-a"


class FakeClock:
    """Settable time source shared by the services and the mock fabric."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def live_recording_meta(ingress_node_api: str | None = INGRESS_NODE) -> dict:
    return {
        "public": {"name": "Studio A"},
        "live_recording": {
            "fabric_config": {
                "ingress_node_api": ingress_node_api,
                "ingress_node_id": "inod3Sa5p3czRyYi8GnDKeV9cJ4sT",
                "edge_write_token": "",
            },
            "recording_config": {
                "recording_params": {"origin_url": "srt://10.0.0.5:11001?mode=listener"},
            },
        },
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_fabric(clock) -> MockFabric:
    fabric = MockFabric(clock=clock)
    fabric.add_object(OBJECT_ID, LIBRARY_ID, live_recording_meta())
    return fabric


@pytest.fixture
def stream_table(tmp_path):
    path = tmp_path / "liveconf.json"
    path.write_bytes(
        orjson.dumps(
            {
                STREAM: {"objectId": OBJECT_ID, "libraryId": LIBRARY_ID},
                "studio-b": {"objectId": OTHER_OBJECT_ID},
                "broken": {"libraryId": LIBRARY_ID},
            }
        )
    )
    return path


@pytest.fixture
def cfg(stream_table) -> AppEnvironConfig:
    return AppEnvironConfig(
        FABRIC_API_URL=FABRIC_API_URL,
        FABRIC_AUTH_TOKEN="test-token",
        LIVE_CONF_PATH=str(stream_table),
        STATUS_MAX_ATTEMPTS=10,
        STATUS_POLL_INTERVAL=0,
        STALL_THRESHOLD_SECONDS=32.9,
    )


@pytest.fixture
def fabric_client(mock_fabric) -> FabricClient:
    return FabricClient(
        FABRIC_API_URL,
        auth_token="test-token",
        transport=httpx.ASGITransport(app=create_app(mock_fabric)),
    )


@pytest.fixture
def service(fabric_client, cfg, clock) -> StreamService:
    return StreamService(fabric=fabric_client, cfg=cfg, clock=clock)


def current_handle(mock_fabric: MockFabric) -> str:
    """Handle of the most recently started LRO."""
    return list(mock_fabric.lros)[-1]
