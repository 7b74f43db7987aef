"""Insertion (interleave) schedule editing."""

from collections.abc import Callable

from loguru import logger
from pydantic import ValidationError

from fabric_live.schemas import StreamState
from fabric_live.services.fabric.fabric_schemas import Insertion
from fabric_live.utils.stream_errors import ConfigurationError, StreamErrorCode

from ._base import BaseService
from .stream_models import InsertionResult

INTERLEAVES_PATH = "/live_recording/playout_config/interleaves"

# Segment durations of the live ABR ladder
AUDIO_ABR_DURATION = 2.005333
VIDEO_ABR_DURATION = 2.002002


def make_insertion(insertion_time: float, duration: float, target_hash: str) -> Insertion:
    return Insertion(
        insertion_time=insertion_time,
        duration=duration,
        audio_abr_duration=AUDIO_ABR_DURATION,
        video_abr_duration=VIDEO_ABR_DURATION,
        playout=f"/qfab/{target_hash}/rep/playout",
    )


def validate_insertions(insertions: list[Insertion]) -> list[str]:
    """Report entries that are not strictly later than every entry before them."""
    errors = []
    latest = None
    for insertion in insertions:
        if latest is not None and insertion.insertion_time <= latest:
            errors.append(f"Bad insertion - time: {insertion.insertion_time}")
        if latest is None or insertion.insertion_time > latest:
            latest = insertion.insertion_time
    return errors


def plan_upsert(insertions: list[Insertion], new: Insertion) -> list[Insertion]:
    """Insert before the first later entry, or append.

    An entry already at the same time is kept; remove it first to replace it.
    """
    for i, insertion in enumerate(insertions):
        if insertion.insertion_time > new.insertion_time:
            return [*insertions[:i], new, *insertions[i:]]
    return [*insertions, new]


def plan_remove(insertions: list[Insertion], insertion_time: float) -> list[Insertion]:
    """Drop the first entry at exactly ``insertion_time``; no match leaves the list as is."""
    for i, insertion in enumerate(insertions):
        if insertion.insertion_time == insertion_time:
            return [*insertions[:i], *insertions[i + 1:]]
    return list(insertions)


class InsertionOperations(BaseService):
    """Edits the interleave list of the active session.

    The whole list is written back on every edit, so concurrent editors of
    the same session overwrite each other.
    """

    async def upsert_insertion(
        self,
        name: str,
        insertion_time: float,
        duration: float,
        target_hash: str,
    ) -> InsertionResult:
        new = make_insertion(insertion_time, duration, target_hash)
        return await self._edit(name, lambda current: plan_upsert(current, new))

    async def remove_insertion(self, name: str, insertion_time: float) -> InsertionResult:
        return await self._edit(name, lambda current: plan_remove(current, insertion_time))

    async def _edit(
        self,
        name: str,
        edit: Callable[[list[Insertion]], list[Insertion]],
    ) -> InsertionResult:
        ref = await self.resolve_stream_ref(name)
        ctx, _ = await self.load_context(ref)
        if not ctx.has_session:
            return InsertionResult(
                name=name,
                state=StreamState.INACTIVE,
                errcode=StreamErrorCode.E_PRECONDITION,
                error="no active streams - must create a stream first",
            )

        node = self.node(ctx)
        raw = await node.read_metadata(
            ref.library_id,
            ref.object_id,
            write_token=ctx.edge_write_token,
            subtree=INTERLEAVES_PATH,
        )
        try:
            current = [Insertion.model_validate(item) for item in (raw or [])]
        except (TypeError, ValidationError) as e:
            raise ConfigurationError(f"bad interleaves for {ctx.edge_write_token}: {e}") from e

        errors = validate_insertions(current)
        if errors:
            logger.warning("Stream {} interleaves out of order: {}", name, errors)

        updated = edit(current)
        await node.replace_metadata(
            ref.library_id,
            ctx.edge_write_token,
            [insertion.model_dump(exclude_none=True) for insertion in updated],
            subtree=INTERLEAVES_PATH,
        )
        logger.info("Stream {} interleaves: {} -> {} entries", name, len(current), len(updated))

        return InsertionResult(name=name, errors=errors, insertions=updated)
