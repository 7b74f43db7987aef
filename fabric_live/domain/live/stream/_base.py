"""Base service for stream operations."""

import re
import time
from collections.abc import Callable
from pathlib import Path

import orjson
from loguru import logger
from pydantic import ValidationError

from fabric_live.app_config import AppEnvironConfig, get_app_environ_config
from fabric_live.services.fabric import FabricClient, get_fabric_client, normalize_node_url
from fabric_live.services.fabric.fabric_schemas import ObjectMetadata
from fabric_live.utils.stream_errors import ConfigurationError, NotFoundError

from .stream_models import SessionContext, StreamRef

# Content object IDs are "iq__" followed by base58
CONTENT_ID_PATTERN = re.compile(r"^iq__[1-9A-HJ-NP-Za-km-z]+$")


def is_content_id(name: str) -> bool:
    return bool(CONTENT_ID_PATTERN.match(name))


def load_stream_table(path: str | Path) -> dict[str, dict]:
    """Load the stream name table (name -> {objectId, libraryId}).

    Raises:
        NotFoundError: If the file is missing or is not a JSON object
    """
    path = Path(path)
    try:
        table = orjson.loads(path.read_bytes())
    except FileNotFoundError as e:
        raise NotFoundError(f"Stream name must be a content id or a label in {path}") from e
    except orjson.JSONDecodeError as e:
        raise NotFoundError(f"Stream table {path} is not valid JSON: {e}") from e

    if not isinstance(table, dict):
        raise NotFoundError(f"Stream table {path} must map names to stream configs")
    return table


class BaseService:
    """Base service with shared stream lookup methods."""

    def __init__(
        self,
        fabric: FabricClient | None = None,
        cfg: AppEnvironConfig | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.fabric = fabric or get_fabric_client()
        self.cfg = cfg or get_app_environ_config()
        self._clock = clock or time.time

    def now(self) -> float:
        return self._clock()

    async def resolve_stream_ref(self, name: str) -> StreamRef:
        """
        Resolve a stream name to its library and object.

        A content id is used directly; any other name is looked up in the
        stream table.

        Raises:
            NotFoundError: If the name is neither a content id nor in the table
        """
        if is_content_id(name):
            library_id = await self.fabric.library_id_for_object(name)
            return StreamRef(name=name, library_id=library_id, object_id=name)

        table = load_stream_table(self.cfg.LIVE_CONF_PATH)
        conf = table.get(name)
        if not isinstance(conf, dict) or not conf.get("objectId"):
            raise NotFoundError(f"Bad name: {name}")

        object_id = conf["objectId"]
        library_id = conf.get("libraryId") or await self.fabric.library_id_for_object(object_id)
        return StreamRef(name=name, library_id=library_id, object_id=object_id)

    async def load_context(self, ref: StreamRef) -> tuple[SessionContext, ObjectMetadata]:
        """
        Read the object's top-level metadata and build the per-call context.

        Raises:
            ConfigurationError: If the metadata has no ingress node API
        """
        raw = await self.fabric.read_metadata(ref.library_id, ref.object_id)
        try:
            meta = ObjectMetadata.from_raw(raw)
        except ValidationError as e:
            raise ConfigurationError(f"bad live recording metadata: {e}") from e

        live = meta.live_recording
        if live is None or not live.fabric_config.ingress_node_api:
            raise ConfigurationError("bad fabric config - missing ingress node API")

        ctx = SessionContext(
            ref=ref,
            fabric_api=normalize_node_url(live.fabric_config.ingress_node_api),
            edge_write_token=live.fabric_config.edge_write_token or "",
        )
        logger.debug(
            "Stream {} node={} edge_write_token={}",
            ref.name,
            ctx.fabric_api,
            ctx.edge_write_token or "-",
        )
        return ctx, meta

    def node(self, ctx: SessionContext) -> FabricClient:
        """Client addressed at the object's ingest node."""
        return self.fabric.for_node(ctx.fabric_api)
