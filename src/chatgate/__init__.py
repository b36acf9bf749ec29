"""A streaming gateway for OpenAI-compatible chat completions."""

__version__ = "0.1.0"

from .config import load_config, get_server_config
from .desensitize import desensitize_url
from .errors import ErrorKind, NormalizedError, ProviderAPIError, classify_error
from .gateway import (
    CompletionGateway,
    create_chat_completion,
    create_passthrough_chat_completion,
    split_payload,
)
from .transports import OpenAISDKTransport, RawHTTPTransport, Transport
from .api import app
