"""
In-memory mock of the content fabric endpoints used by fabric-live.

Covers metadata reads and writes, write tokens, finalize, library lookup and
the live LRO calls (start/stop/status):

* GET|PUT|POST /qlibs/{lib}/q/{ref}/meta[/{path}]
* POST /qlibs/{lib}/qid/{object_id}
* POST /qlibs/{lib}/q/{token}?publish=true|false
* GET  /qid/{object_id}/library
* POST /qlibs/{lib}/q/{token}/call/live/start
* POST /qlibs/{lib}/q/{token}/call/live/stop/{handle}
* GET  /qlibs/{lib}/q/{token}/call/live/status/{handle}

Run with uvicorn (or any ASGI server):
    uvicorn tools.mock_fabric:app --port 8008

Objects are seeded from MOCK_FABRIC_SEED (a JSON file mapping object ids to
{"library_id": ..., "meta": {...}}) when set.
"""

from __future__ import annotations

import copy
import itertools
import os
import time
from pathlib import Path
from typing import Any

import orjson
from fastapi import Body, FastAPI, HTTPException, Query
from loguru import logger


def deep_merge(target: dict, patch: dict) -> dict:
    """Merge ``patch`` into ``target`` in place; nested dicts are merged, everything else replaced."""
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _path_keys(path: str) -> list[str]:
    return [key for key in path.strip("/").split("/") if key]


def get_path(meta: Any, path: str) -> Any:
    node = meta
    for key in _path_keys(path):
        if isinstance(node, dict) and key in node:
            node = node[key]
        elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
            node = node[int(key)]
        else:
            raise KeyError(path)
    return node


def set_path(meta: dict, path: str, value: Any) -> dict:
    """Set ``value`` at ``path``, creating intermediate dicts. An empty path replaces the document."""
    keys = _path_keys(path)
    if not keys:
        return copy.deepcopy(value)
    node = meta
    for key in keys[:-1]:
        if not isinstance(node.get(key), dict):
            node[key] = {}
        node = node[key]
    node[keys[-1]] = copy.deepcopy(value)
    return meta


class MockFabric:
    """Fabric state: objects with their versions, open write tokens and LROs."""

    def __init__(self, clock=time.time):
        self.clock = clock
        self.objects: dict[str, dict] = {}
        self.versions: dict[str, dict] = {}
        self.tokens: dict[str, dict] = {}
        self.lros: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):06d}"

    # ==================== OBJECTS ====================

    def add_object(self, object_id: str, library_id: str, meta: dict | None = None) -> str:
        version_hash = self._new_id("hq__")
        self.objects[object_id] = {"library_id": library_id, "latest": version_hash}
        self.versions[version_hash] = {
            "object_id": object_id,
            "meta": copy.deepcopy(meta or {}),
            "publish": True,
            "commit_message": "create",
        }
        return version_hash

    def latest_meta(self, object_id: str) -> dict:
        return self.versions[self.objects[object_id]["latest"]]["meta"]

    def meta_for(self, ref: str) -> dict:
        if ref in self.tokens:
            return self.tokens[ref]["meta"]
        if ref in self.objects:
            return self.latest_meta(ref)
        if ref in self.versions:
            return self.versions[ref]["meta"]
        raise KeyError(ref)

    def create_write_token(self, object_id: str) -> str:
        token = self._new_id("tqw__")
        self.tokens[token] = {
            "object_id": object_id,
            "meta": copy.deepcopy(self.latest_meta(object_id)),
        }
        return token

    def finalize(self, token: str, *, publish: bool, commit_message: str | None) -> str:
        """Commit a write token as a new version and close the token.

        Only a published version becomes the object's latest.
        """
        staged = self.tokens.pop(token)
        version_hash = self._new_id("hq__")
        self.versions[version_hash] = {
            "object_id": staged["object_id"],
            "meta": staged["meta"],
            "publish": publish,
            "commit_message": commit_message,
        }
        if publish:
            self.objects[staged["object_id"]]["latest"] = version_hash
        return version_hash

    # ==================== LIVE LRO ====================

    def start_lro(self, token: str) -> str:
        """Open a new recording period in the edge token's metadata."""
        handle = self._new_id("tlro")
        now = int(self.clock())
        meta = self.tokens[token]["meta"]
        live = meta.setdefault("live_recording", {})
        recordings = live.setdefault("recordings", {})
        periods = recordings.setdefault("live_offering", [])
        periods.append(
            {
                "live_recording_handle": handle,
                "recording_start_time_epoch_sec": now,
                "start_time_epoch_sec": now,
                "end_time_epoch_sec": 0,
                "video_finalized_parts_info": {"n_parts": 0, "last_finalization_time": 0},
            }
        )
        recordings["recording_sequence"] = len(periods)
        self.lros[handle] = {"token": token, "state": "starting", "script": [], "ignore_stop": False}
        return handle

    def lro_state(self, handle: str) -> str:
        """Current LRO state; scripted states are reported one per status call."""
        lro = self.lros[handle]
        if lro["script"]:
            lro["state"] = lro["script"].pop(0)
        return lro["state"]

    def stop_lro(self, token: str, handle: str) -> None:
        lro = self.lros[handle]
        if lro["state"] == "terminated":
            raise ValueError(f"LRO {handle} already terminated")
        if lro["ignore_stop"]:
            return
        lro["state"] = "terminated"
        for period in self.meta_for(token)["live_recording"]["recordings"]["live_offering"]:
            if period["live_recording_handle"] == handle:
                period["end_time_epoch_sec"] = int(self.clock())

    def finalize_part(self, handle: str) -> None:
        """Pretend the engine finalized a video part (moves starting -> running)."""
        lro = self.lros[handle]
        lro["state"] = "running"
        periods = self.meta_for(lro["token"])["live_recording"]["recordings"]["live_offering"]
        for period in periods:
            if period["live_recording_handle"] == handle:
                parts = period["video_finalized_parts_info"]
                parts["n_parts"] += 1
                parts["last_finalization_time"] = int(self.clock() * 1_000_000)


def _meta_ref(fabric: MockFabric, ref: str) -> dict:
    try:
        return fabric.meta_for(ref)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"unknown content {ref}")


def _write_token(fabric: MockFabric, token: str) -> dict:
    if token not in fabric.tokens:
        raise HTTPException(status_code=404, detail=f"unknown write token {token}")
    return fabric.tokens[token]


def create_app(fabric: MockFabric | None = None) -> FastAPI:
    fabric = fabric or MockFabric()
    app = FastAPI(title="content fabric mock", version="0.1.0")
    app.state.fabric = fabric

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "mock-fabric"}

    @app.get("/qid/{object_id}/library")
    async def library_for_object(object_id: str):
        if object_id not in fabric.objects:
            raise HTTPException(status_code=404, detail=f"unknown object {object_id}")
        return {"library_id": fabric.objects[object_id]["library_id"]}

    @app.get("/qlibs/{library_id}/q/{ref}/meta")
    @app.get("/qlibs/{library_id}/q/{ref}/meta/{path:path}")
    async def read_meta(library_id: str, ref: str, path: str = ""):
        fabric.calls.append(("GET", f"{ref}/meta/{path}"))
        try:
            return get_path(_meta_ref(fabric, ref), path)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"no metadata at {path}")

    @app.put("/qlibs/{library_id}/q/{token}/meta")
    @app.put("/qlibs/{library_id}/q/{token}/meta/{path:path}")
    async def replace_meta(library_id: str, token: str, path: str = "", body: Any = Body(None)):
        fabric.calls.append(("PUT", f"{token}/meta/{path}"))
        staged = _write_token(fabric, token)
        staged["meta"] = set_path(staged["meta"], path, body)
        return None

    @app.post("/qlibs/{library_id}/q/{token}/meta")
    @app.post("/qlibs/{library_id}/q/{token}/meta/{path:path}")
    async def merge_meta(library_id: str, token: str, path: str = "", body: dict = Body(...)):
        fabric.calls.append(("POST", f"{token}/meta/{path}"))
        staged = _write_token(fabric, token)
        try:
            current = get_path(staged["meta"], path)
        except KeyError:
            current = {}
        merged = deep_merge(current if isinstance(current, dict) else {}, body)
        staged["meta"] = set_path(staged["meta"], path, merged)
        return None

    @app.post("/qlibs/{library_id}/qid/{object_id}")
    async def create_write_token(library_id: str, object_id: str):
        if object_id not in fabric.objects:
            raise HTTPException(status_code=404, detail=f"unknown object {object_id}")
        token = fabric.create_write_token(object_id)
        fabric.calls.append(("POST", f"qid/{object_id}"))
        return {"write_token": token}

    @app.post("/qlibs/{library_id}/q/{token}")
    async def finalize(
        library_id: str,
        token: str,
        publish: bool = Query(True),
        body: dict | None = Body(None),
    ):
        _write_token(fabric, token)
        commit_message = (body or {}).get("commit_message")
        version_hash = fabric.finalize(token, publish=publish, commit_message=commit_message)
        fabric.calls.append(("POST", f"{token}?publish={str(publish).lower()}"))
        logger.info("Finalized {} -> {} (publish={})", token, version_hash, publish)
        return {"hash": version_hash}

    @app.post("/qlibs/{library_id}/q/{token}/call/live/start")
    async def live_start(library_id: str, token: str):
        _write_token(fabric, token)
        handle = fabric.start_lro(token)
        fabric.calls.append(("POST", f"{token}/call/live/start"))
        return {"handle": handle}

    @app.post("/qlibs/{library_id}/q/{token}/call/live/stop/{handle}")
    async def live_stop(library_id: str, token: str, handle: str):
        fabric.calls.append(("POST", f"{token}/call/live/stop/{handle}"))
        if handle not in fabric.lros:
            raise HTTPException(status_code=404, detail=f"unknown LRO {handle}")
        try:
            fabric.stop_lro(token, handle)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return None

    @app.get("/qlibs/{library_id}/q/{token}/call/live/status/{handle}")
    async def live_status(library_id: str, token: str, handle: str):
        fabric.calls.append(("GET", f"{token}/call/live/status/{handle}"))
        if handle not in fabric.lros:
            raise HTTPException(status_code=404, detail=f"unknown LRO {handle}")
        return {"handle": handle, "state": fabric.lro_state(handle)}

    return app


def _seeded_fabric() -> MockFabric:
    fabric = MockFabric()
    seed = os.getenv("MOCK_FABRIC_SEED")
    if seed:
        for object_id, entry in orjson.loads(Path(seed).read_bytes()).items():
            fabric.add_object(object_id, entry["library_id"], entry.get("meta"))
        logger.info("Seeded {} objects from {}", len(fabric.objects), seed)
    return fabric


app = create_app(_seeded_fabric())

__all__ = ["MockFabric", "app", "create_app"]
