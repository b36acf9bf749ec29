"""Error taxonomy and classification for upstream failures."""

import json
import logging
import traceback
from enum import Enum
from typing import Any, Dict, Optional

import openai
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from .config import upstream_error_logger

logger = logging.getLogger(__name__)

UNSERIALIZABLE_PLACEHOLDER = "[unserializable error]"


class ErrorKind(str, Enum):
    """Caller-facing error types."""
    OPENAI_BIZ_ERROR = "OpenAIBizError"
    INTERNAL_SERVER_ERROR = "InternalServerError"


class ProviderAPIError(Exception):
    """
    A structured error reported by the upstream provider itself.

    Transports raise this for business errors (bad request, rate limit, auth,
    content policy...) so the classifier does not need to know each transport's
    native exception hierarchy. Anything else reaching the classifier is
    treated as an infrastructure failure.
    """

    def __init__(
        self,
        message: str,
        *,
        error: Any = None,
        cause: Any = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        stack: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error = error
        self.cause = cause
        self.status_code = status_code
        self.headers = headers
        self.stack = stack

    @classmethod
    def from_openai(cls, exc: openai.APIError) -> "ProviderAPIError":
        """Build from an SDK error; the SDK already unwraps the body's ``error`` key."""
        response = getattr(exc, "response", None)
        headers = dict(response.headers) if response is not None else None
        return cls(
            exc.message,
            error=exc.body,
            cause=exc.__cause__,
            status_code=getattr(exc, "status_code", None),
            headers=headers,
            stack=_format_stack(exc),
        )


class NormalizedError(BaseModel):
    kind: ErrorKind
    endpoint: str
    error: Any = None
    status: Optional[int] = None

    @property
    def status_code(self) -> int:
        if self.kind == ErrorKind.OPENAI_BIZ_ERROR:
            if self.status is not None and 400 <= self.status < 600:
                return self.status
            return 502
        return 500

    def to_body(self) -> Dict[str, Any]:
        return {
            "ErrorType": self.kind.value,
            "body": {"endpoint": self.endpoint, "error": self.error},
        }


def _format_stack(exc: BaseException) -> str:
    try:
        return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    except Exception:
        return type(exc).__name__


def stringify_failure(failure: Any) -> str:
    """Best-effort string form of a failure; never raises."""
    try:
        if isinstance(failure, BaseException):
            text = str(failure)
            name = type(failure).__name__
            return f"{name}: {text}" if text else name
        return json.dumps(failure, default=str)
    except Exception:
        return UNSERIALIZABLE_PLACEHOLDER


def to_jsonable(value: Any) -> Any:
    """Coerce a diagnostic payload into something JSONResponse can render."""
    try:
        if isinstance(value, BaseException):
            return {"name": type(value).__name__, "message": str(value)}
        encoded = jsonable_encoder(value)
        json.dumps(encoded, allow_nan=False)
        return encoded
    except Exception:
        return stringify_failure(value)


def _provider_payload(failure: ProviderAPIError) -> Any:
    if failure.error is not None:
        return failure.error
    # Some SDK failures wrap a lower-level transport bug instead of a clean error
    if failure.cause:
        return failure.cause
    return {
        "headers": failure.headers,
        "stack": failure.stack or _format_stack(failure),
        "status": failure.status_code,
    }


def classify_error(failure: Any, endpoint: str) -> NormalizedError:
    """
    Turn a failure raised by any transport into a NormalizedError.

    ``endpoint`` must already be desensitized. The payload is logged on the
    upstream error logger before returning. Never raises.
    """
    try:
        if isinstance(failure, ProviderAPIError):
            normalized = NormalizedError(
                kind=ErrorKind.OPENAI_BIZ_ERROR,
                endpoint=endpoint,
                error=to_jsonable(_provider_payload(failure)),
                status=failure.status_code,
            )
        else:
            normalized = NormalizedError(
                kind=ErrorKind.INTERNAL_SERVER_ERROR,
                endpoint=endpoint,
                error=stringify_failure(failure),
            )
    except Exception as e:
        logger.error(f"Error while classifying upstream failure: {stringify_failure(e)}")
        normalized = NormalizedError(
            kind=ErrorKind.INTERNAL_SERVER_ERROR,
            endpoint=endpoint if isinstance(endpoint, str) else "***",
            error=stringify_failure(failure),
        )

    try:
        upstream_error_logger.error(
            f"{normalized.kind.value} from {normalized.endpoint}: {normalized.error}"
        )
    except Exception:
        logger.error(f"{normalized.kind.value} from {normalized.endpoint}")
    return normalized
