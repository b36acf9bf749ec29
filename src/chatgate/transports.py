"""Upstream transports: the OpenAI SDK client and a raw HTTP passthrough."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import openai

from .desensitize import desensitize_url
from .errors import ProviderAPIError
from .models import OPENAI_PARAMS
from .streaming import passthrough_stream, sdk_text_stream

logger = logging.getLogger(__name__)


@dataclass
class UpstreamStream:
    """A started upstream body, owned by the caller from here on."""
    body: AsyncIterator[bytes]
    status_code: int = 200
    media_type: str = "text/plain; charset=utf-8"
    headers: Dict[str, str] = field(default_factory=dict)


class Transport(ABC):
    """One way of reaching an upstream provider."""

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Endpoint identity reported (after desensitization) in errors."""

    @abstractmethod
    async def invoke(
        self, messages: List[Dict[str, Any]], params: Dict[str, Any]
    ) -> UpstreamStream:
        """Start a streaming completion, raising on any failure."""


class OpenAISDKTransport(Transport):
    """Streams chat completions through an ``openai.AsyncOpenAI`` client."""

    def __init__(self, client: openai.AsyncOpenAI):
        self.client = client

    @property
    def endpoint(self) -> str:
        return str(self.client.base_url)

    async def invoke(self, messages, params):
        kwargs = {k: v for k, v in params.items() if k in OPENAI_PARAMS}
        extra_body = {k: v for k, v in params.items() if k not in OPENAI_PARAMS and k != "stream"}
        if extra_body:
            kwargs["extra_body"] = extra_body

        # with_options returns a copy sharing the connection pool; one attempt only
        client = self.client.with_options(max_retries=0)
        try:
            # Some providers behind proxies misbehave without an explicit Accept header
            stream = await client.chat.completions.create(
                messages=messages,
                **kwargs,
                stream=True,
                extra_headers={"Accept": "*/*"},
            )
        except openai.APIConnectionError:
            raise
        except openai.APIError as e:
            raise ProviderAPIError.from_openai(e) from e

        return UpstreamStream(body=sdk_text_stream(stream))


class RawHTTPTransport(Transport):
    """
    POSTs the payload straight to an alternate base API and relays its bytes.

    Whatever wire format the alternate endpoint emits is passed through as-is.
    If no ``http_client`` is given, one is created per call and closed when the
    stream ends.
    """

    def __init__(
        self,
        base_api: str,
        endpoint: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_api = base_api
        self._endpoint = endpoint
        self.http_client = http_client

    @property
    def endpoint(self) -> str:
        return self._endpoint or self.base_api

    async def invoke(self, messages, params):
        body = json.dumps({"messages": messages, **params, "stream": True})
        headers = {"content-type": "application/json;charset=UTF-8"}

        owned_client = None
        client = self.http_client
        if client is None:
            owned_client = client = httpx.AsyncClient(timeout=None)

        logger.info(f"Calling passthrough endpoint {desensitize_url(self.base_api)}")
        response = None
        try:
            request = client.build_request("POST", self.base_api, content=body, headers=headers)
            response = await client.send(request, stream=True)

            if response.status_code >= 400:
                raise await self._provider_error(response)
        except BaseException:
            if response is not None:
                await response.aclose()
            if owned_client is not None:
                await owned_client.aclose()
            raise

        return UpstreamStream(
            body=passthrough_stream(response, owned_client),
            status_code=200,
            media_type=response.headers.get("content-type", "text/event-stream"),
        )

    @staticmethod
    async def _provider_error(response: httpx.Response) -> ProviderAPIError:
        content = (await response.aread()).decode("utf-8", errors="replace")
        try:
            error = json.loads(content)
        except json.JSONDecodeError:
            error = content or None
        if isinstance(error, dict):
            error = error.get("error", error)
        return ProviderAPIError(
            f"Passthrough endpoint returned HTTP {response.status_code}",
            error=error,
            status_code=response.status_code,
            headers=dict(response.headers),
        )
