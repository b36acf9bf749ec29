"""Completion gateway: one streaming request, one upstream attempt."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import openai
from fastapi import Response
from fastapi.responses import JSONResponse, StreamingResponse

from .config import get_server_config
from .desensitize import desensitize_url
from .errors import NormalizedError, classify_error
from .models import ChatCompletionPayload
from .transports import OpenAISDKTransport, RawHTTPTransport, Transport

logger = logging.getLogger(__name__)

Payload = Union[ChatCompletionPayload, Mapping[str, Any]]


def split_payload(payload: Payload) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Separate ``messages`` from the provider parameters.

    The returned parameters always request a streamed response, whatever the
    caller asked for.
    """
    if isinstance(payload, ChatCompletionPayload):
        data = payload.model_dump(exclude_none=True)
    else:
        data = dict(payload)

    messages = list(data.pop("messages", None) or [])
    data["stream"] = True
    return messages, data


def create_error_response(error: NormalizedError) -> Response:
    return JSONResponse(content=error.to_body(), status_code=error.status_code)


class CompletionGateway:
    """Runs a chat completion over a transport and shapes the HTTP response."""

    def __init__(self, transport: Transport):
        self.transport = transport

    async def complete(self, payload: Payload) -> Response:
        try:
            messages, params = split_payload(payload)
            upstream = await self.transport.invoke(messages, params)
        except Exception as e:
            return self.error_response(e)

        return StreamingResponse(
            upstream.body,
            status_code=upstream.status_code,
            headers=upstream.headers,
            media_type=upstream.media_type,
        )

    def error_response(self, failure: Exception) -> Response:
        try:
            endpoint = self.transport.endpoint
        except Exception:
            endpoint = None
        return create_error_response(classify_error(failure, desensitize_url(endpoint)))


async def create_chat_completion(payload: Payload, client: openai.AsyncOpenAI) -> Response:
    """Stream a chat completion through the OpenAI SDK client."""
    return await CompletionGateway(OpenAISDKTransport(client)).complete(payload)


async def create_passthrough_chat_completion(
    payload: Payload, endpoint: Optional[str] = None
) -> Response:
    """
    Stream a chat completion from the configured alternate base API.

    Errors report ``endpoint``, by default the configured OpenAI base URL, so a
    provider has the same endpoint identity on both paths. The server config
    is read once per call.
    """
    server_config = get_server_config()
    transport = RawHTTPTransport(
        server_config.chat_base_api, endpoint=endpoint or server_config.openai_base_url
    )
    gateway = CompletionGateway(transport)
    if not transport.base_api:
        return gateway.error_response(RuntimeError("CHAT_BASE_API is not configured"))
    return await gateway.complete(payload)
