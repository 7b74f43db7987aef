"""Shared schemas."""

from .stream_state import LroState, StreamState

__all__ = [
    "LroState",
    "StreamState",
]
