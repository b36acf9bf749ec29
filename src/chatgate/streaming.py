"""Streaming response handling for the chatgate gateway."""

import inspect
import logging
from typing import Any, AsyncGenerator, Optional

import httpx

logger = logging.getLogger(__name__)


def chunk_text(chunk: Any) -> Optional[str]:
    """Extract the incremental text delta from an SDK chunk (object or dict)."""
    if isinstance(chunk, dict):
        choices = chunk.get("choices") or []
        if not choices:
            return None
        delta = choices[0].get("delta") or {}
        return delta.get("content")

    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return None
    delta = getattr(choices[0], "delta", None)
    return getattr(delta, "content", None)


async def _close_upstream(upstream: Any) -> None:
    close = getattr(upstream, "aclose", None) or getattr(upstream, "close", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result


async def sdk_text_stream(stream: Any) -> AsyncGenerator[bytes, None]:
    """
    Re-encode an SDK chunk stream as a plain UTF-8 text stream.

    Chunks are pulled one at a time as the consumer asks for bytes. The SDK
    stream is closed when iteration ends, fails or is cancelled by the caller.
    """
    try:
        async for chunk in stream:
            text = chunk_text(chunk)
            if text:
                yield text.encode("utf-8")
    except Exception as e:
        logger.error(f"Upstream stream failed mid-response: {type(e).__name__}: {str(e)}")
        raise
    finally:
        await _close_upstream(stream)


async def passthrough_stream(
    response: httpx.Response, client: Optional[httpx.AsyncClient] = None
) -> AsyncGenerator[bytes, None]:
    """
    Relay the raw bytes of an upstream httpx response unmodified.

    ``client`` is closed along with the response when the stream was opened
    on a client owned by the transport.
    """
    try:
        async for chunk in response.aiter_raw():
            yield chunk
    except Exception as e:
        logger.error(f"Upstream stream failed mid-response: {type(e).__name__}: {str(e)}")
        raise
    finally:
        await response.aclose()
        if client is not None:
            await client.aclose()
