"""FastAPI application and routes for the chatgate gateway."""

import json
import logging
from typing import Optional

import httpx
import openai
from fastapi import FastAPI, Request, Response
from starlette.background import BackgroundTask

from .config import get_server_config, ServerConfig
from .gateway import create_chat_completion, create_passthrough_chat_completion
from .models import ChatCompletionPayload

logger = logging.getLogger(__name__)

app = FastAPI(title="chatgate")


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return None


def build_openai_client(
    server_config: ServerConfig, api_key: str, http_client: Optional[httpx.AsyncClient] = None
) -> openai.AsyncOpenAI:
    """Create the upstream SDK client for one request; it never retries."""
    return openai.AsyncOpenAI(
        api_key=api_key,
        base_url=server_config.openai_base_url,
        max_retries=0,
        http_client=http_client,
    )


def unauthorized() -> Response:
    logger.warning("Request received without Authorization header")
    return Response(
        content=json.dumps(
            {
                "error": {
                    "message": "Authorization header is required and OPENAI_API_KEY is not set",
                    "type": "auth_error",
                }
            }
        ),
        status_code=401,
        media_type="application/json",
    )


@app.post("/chat/completions")
async def chat_completions(payload: ChatCompletionPayload, request: Request) -> Response:
    """
    Stream a chat completion through the OpenAI SDK.

    The caller's bearer token is used as the upstream API key, falling back to
    the configured OPENAI_API_KEY. The per-request client is closed once the
    response has been sent.
    """
    server_config = get_server_config()
    api_key = bearer_token(request) or server_config.openai_api_key
    if not api_key:
        return unauthorized()

    client = build_openai_client(server_config, api_key)
    try:
        response = await create_chat_completion(payload, client)
    except BaseException:
        await client.close()
        raise

    response.background = BackgroundTask(client.close)
    return response


@app.post("/passthrough/chat/completions")
async def passthrough_chat_completions(payload: ChatCompletionPayload) -> Response:
    """Stream a chat completion from the configured CHAT_BASE_API, bytes unmodified."""
    return await create_passthrough_chat_completion(payload)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
