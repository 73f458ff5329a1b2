"""Decode streamed chat completion responses.

The provider sends newline-delimited records, usually as server-sent events
(``data: {...}``), and ends the stream with ``data: [DONE]``. A record that
cannot be decoded is logged and skipped; the rest of the stream is still
delivered.
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from pydantic import ValidationError

from ..exceptions import DecodeError, ProviderError, RequestCancelledError
from .cancellation import CancellationToken
from .models import CompletionChunk, StreamDelta

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_IGNORED_FIELDS = ("event:", "id:", "retry:")
_CANCELLED = object()


def _record_payload(line: str) -> str | None:
    """Extract the record payload from one line, or None if the line carries none."""
    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if line.startswith("data:"):
        return line[len("data:"):].strip() or None
    if line.startswith(_IGNORED_FIELDS):
        return None
    return line


def provider_error_from_payload(payload: Any, status_code: int | None = None) -> ProviderError | None:
    """Build a ProviderError from an ``{"error": ...}`` payload, if it is one."""
    if not isinstance(payload, dict) or "error" not in payload:
        return None

    error = payload["error"]
    if isinstance(error, dict):
        return ProviderError(
            str(error.get("message") or "Unknown provider error"),
            status_code=status_code,
            error_type=error.get("type"),
            code=str(error["code"]) if error.get("code") is not None else None,
        )
    return ProviderError(str(error), status_code=status_code)


class StreamDecoder:
    """Incremental decoder for one streamed response.

    Each chunk passed to ``decode_chunk`` is decoded on its own. Once the
    termination sentinel has been seen the decoder is finished and ignores
    anything else it is given.
    """

    def __init__(self) -> None:
        self.finished = False
        self.finish_reason: str | None = None
        self.skipped = 0

    def decode_record(self, payload: str) -> StreamDelta:
        """Decode one record payload.

        Raises:
            DecodeError: If the payload is not a valid completion chunk
            ProviderError: If the payload is a provider error object
        """
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON in stream record: {e}") from e

        error = provider_error_from_payload(data)
        if error is not None:
            raise error

        try:
            chunk = CompletionChunk.model_validate(data)
        except ValidationError as e:
            raise DecodeError(f"Unexpected stream record shape: {e.error_count()} validation errors") from e

        if not chunk.choices:
            return StreamDelta(usage=chunk.usage)

        choice = chunk.choices[0]
        if choice.finish_reason is not None:
            self.finish_reason = choice.finish_reason
        return StreamDelta(
            text=choice.delta.content,
            role=choice.delta.role,
            finish_reason=choice.finish_reason,
            usage=chunk.usage,
        )

    def decode_chunk(self, chunk: str | bytes) -> list[StreamDelta]:
        """Decode every record in a chunk, in order.

        Records after the termination sentinel are not decoded.
        """
        if self.finished:
            return []
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8", errors="replace")

        deltas = []
        for line in chunk.splitlines():
            payload = _record_payload(line)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self.finished = True
                break
            try:
                deltas.append(self.decode_record(payload))
            except DecodeError as e:
                self.skipped += 1
                logger.warning("Skipping malformed stream record: %s", e)
        return deltas


async def _next_chunk(iterator: AsyncIterator[Any], cancel_token: CancellationToken | None) -> Any:
    """Wait for the next chunk, or return ``_CANCELLED`` as soon as the token fires."""
    if cancel_token is None:
        return await iterator.__anext__()
    if cancel_token.cancelled:
        return _CANCELLED

    async def pull() -> Any:
        return await iterator.__anext__()

    try:
        return await cancel_token.guard(pull())
    except RequestCancelledError:
        return _CANCELLED


async def iter_stream_deltas(
    chunks: AsyncIterable[str | bytes],
    cancel_token: CancellationToken | None = None,
    decoder: StreamDecoder | None = None,
) -> AsyncIterator[StreamDelta]:
    """Yield deltas from a stream of chunks in arrival order.

    Stops at the termination sentinel, at the end of the input, or as soon as
    ``cancel_token`` is cancelled. The chunk source is closed in every case.

    Args:
        chunks: Async iterable of raw chunks (lines or larger pieces)
        cancel_token: Optional token that stops iteration when cancelled
        decoder: Decoder to use, so callers can inspect its state afterwards

    Yields:
        StreamDelta for every successfully decoded record
    """
    decoder = decoder or StreamDecoder()
    iterator = chunks.__aiter__()
    try:
        while not decoder.finished:
            try:
                chunk = await _next_chunk(iterator, cancel_token)
            except StopAsyncIteration:
                return
            if chunk is _CANCELLED:
                logger.debug("Stream cancelled by consumer")
                return

            for delta in decoder.decode_chunk(chunk):
                if cancel_token is not None and cancel_token.cancelled:
                    logger.debug("Stream cancelled by consumer")
                    return
                yield delta
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
