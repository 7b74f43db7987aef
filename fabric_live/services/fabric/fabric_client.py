from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from fabric_live.schemas import LroState
from fabric_live.services.fabric.fabric_schemas import (
    FinalizeResponse,
    LibraryResponse,
    LroReported,
    LroStartResponse,
    LroUnreachable,
    RemoteCallOutcome,
    WriteTokenResponse,
)
from fabric_live.utils.stream_errors import RemoteUnavailableError


def normalize_node_url(node: str) -> str:
    """Accept both a hostname and a URL for an ingest node (https assumed)."""
    node = node.strip().rstrip("/")
    if not node.startswith("http"):
        node = "https://" + node
    return node


class FabricClient:
    """Client for the content fabric metadata API and live LRO calls.

    A client is bound to a single node. Use ``for_node`` to address another
    node; the original client is left untouched.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._transport = transport

    def for_node(self, node_url: str) -> FabricClient:
        return FabricClient(
            normalize_node_url(node_url),
            auth_token=self.auth_token,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _build_headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        if extra:
            headers.update(extra)
        return headers

    def fabric_url(
        self,
        library_id: str,
        ref: str,
        *,
        call: str | None = None,
        meta: str | None = None,
        rep: str | None = None,
    ) -> str:
        """Build a URL for an object, version hash or write token.

        ``meta`` is a metadata subtree ("" for the whole document), ``call`` a
        bitcode method such as ``live/status/<handle>``, ``rep`` a rep path.
        """
        url = f"{self.base_url}/qlibs/{library_id}/q/{ref}"
        if meta is not None:
            url += "/meta"
            if meta.strip("/"):
                url += "/" + meta.strip("/")
        elif call is not None:
            url += "/call/" + call.strip("/")
        elif rep is not None:
            url += "/rep/" + rep.strip("/")
        return url

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        allow_missing: bool = False,
    ) -> Any:
        """Issue a required call. Transport errors and non-2xx raise RemoteUnavailableError."""
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=self._build_headers(),
                )
        except httpx.HTTPError as e:
            logger.warning("Fabric {} {} failed: {!r}", method, url, e)
            raise RemoteUnavailableError(f"{method} {url} failed: {e!r}") from e

        if allow_missing and response.status_code == 404:
            return None
        if response.is_error:
            logger.warning("Fabric {} {} returned {}", method, url, response.status_code)
            raise RemoteUnavailableError(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteUnavailableError(
                f"{method} {url} returned a non-JSON body",
                status_code=response.status_code,
            ) from e
        logger.debug("Fabric {} {} response: {}", method, url, data)
        return data

    # ==================== METADATA ====================

    async def read_metadata(
        self,
        library_id: str,
        object_id: str,
        *,
        write_token: str | None = None,
        subtree: str = "",
    ) -> Any:
        """Read object metadata, or the metadata staged under a write token.

        Returns None when the subtree does not exist.
        """
        url = self.fabric_url(library_id, write_token or object_id, meta=subtree)
        return await self._request("GET", url, allow_missing=True)

    async def replace_metadata(
        self,
        library_id: str,
        write_token: str,
        metadata: Any,
        *,
        subtree: str = "",
    ) -> None:
        url = self.fabric_url(library_id, write_token, meta=subtree)
        await self._request("PUT", url, json=metadata)

    async def merge_metadata(
        self,
        library_id: str,
        write_token: str,
        metadata: dict,
        *,
        subtree: str = "",
    ) -> None:
        url = self.fabric_url(library_id, write_token, meta=subtree)
        await self._request("POST", url, json=metadata)

    async def create_write_token(self, library_id: str, object_id: str) -> str:
        """Open a new write token (staging area) on the object."""
        data = await self._request("POST", f"{self.base_url}/qlibs/{library_id}/qid/{object_id}")
        return WriteTokenResponse.model_validate(data).write_token

    async def finalize(
        self,
        library_id: str,
        write_token: str,
        *,
        publish: bool = True,
        commit_message: str | None = None,
    ) -> str:
        """Commit a write token. Returns the new version hash."""
        url = f"{self.base_url}/qlibs/{library_id}/q/{write_token}"
        body = {"commit_message": commit_message} if commit_message else {}
        data = await self._request(
            "POST",
            url,
            json=body,
            params={"publish": "true" if publish else "false"},
        )
        return FinalizeResponse.model_validate(data).hash

    async def library_id_for_object(self, object_id: str) -> str:
        data = await self._request("GET", f"{self.base_url}/qid/{object_id}/library")
        return LibraryResponse.model_validate(data).library_id

    # ==================== LIVE LRO ====================

    async def start_lro(self, library_id: str, write_token: str) -> LroStartResponse:
        """Start a recording LRO under the edge write token."""
        url = self.fabric_url(library_id, write_token, call="live/start")
        data = await self._request("POST", url)
        return LroStartResponse.model_validate(data or {})

    async def stop_lro(self, library_id: str, write_token: str, handle: str) -> RemoteCallOutcome:
        """Ask the LRO to stop.

        Best effort: the endpoint answers with an empty body and an already
        stopped LRO answers with an error, so failures are returned, not raised.
        """
        url = self.fabric_url(library_id, write_token, call=f"live/stop/{handle}")
        try:
            await self._request("POST", url)
        except RemoteUnavailableError as e:
            logger.info("LRO stop ignored failure: {}", e.errmesg)
            return RemoteCallOutcome.ignored_error(e.errmesg)
        return RemoteCallOutcome.ok()

    async def lro_status(
        self, library_id: str, write_token: str, handle: str
    ) -> LroReported | LroUnreachable:
        """Poll the LRO status. Unreachable is an observation, not an error."""
        url = self.fabric_url(library_id, write_token, call=f"live/status/{handle}")
        try:
            data = await self._request("GET", url)
        except RemoteUnavailableError as e:
            logger.info("LRO status unreachable: {}", e.errmesg)
            return LroUnreachable(status_code=e.status_code, detail=e.errmesg)

        raw_state = (data or {}).get("state") if isinstance(data, dict) else None
        return LroReported(state=LroState.parse(raw_state), raw_state=raw_state)


def get_fabric_client() -> FabricClient:
    """Client bound to the configured fabric node."""
    from fabric_live.app_config import get_app_environ_config

    cfg = get_app_environ_config()
    return FabricClient(
        cfg.FABRIC_API_URL,
        auth_token=cfg.FABRIC_AUTH_TOKEN,
        timeout=cfg.HTTP_TIMEOUT_SECONDS,
    )
