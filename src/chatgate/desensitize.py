"""Endpoint desensitization for logs and client-visible errors."""

import logging
import re
from urllib.parse import urlsplit

from .config import DEFAULT_OPENAI_BASE_URL

logger = logging.getLogger(__name__)

MASK = "***"
PORT_MASK = "****"

_HOSTINFO = re.compile(r"^(\[[^\]]*\]|[^:]*)(?::(.*))?$")
_VERSION_SEGMENT = re.compile(r"^v\d+(?:(?:alpha|beta)\d*)?$", re.IGNORECASE)


def _mask_host(host: str) -> str:
    if not host:
        return MASK
    if host.startswith("["):
        return MASK

    labels = host.split(".")
    # a two-label host's last label may itself be a private domain
    if len(labels) < 3 or all(label.isdigit() for label in labels):
        return ".".join(MASK for _ in labels)
    return ".".join([MASK] * (len(labels) - 1) + [labels[-1].lower()])


def _mask_path(path: str) -> str:
    segments = []
    for segment in path.split("/"):
        if not segment or segment == MASK or _VERSION_SEGMENT.match(segment):
            segments.append(segment)
        else:
            segments.append(MASK)
    return "/".join(segments)


def desensitize_url(url) -> str:
    """
    Redact the parts of an upstream endpoint that could reveal private infrastructure.

    The public OpenAI endpoint is returned as-is. For any other URL the
    credentials, query and fragment are dropped, host labels and the port are
    masked (the top-level domain survives only on hosts with three or more
    labels), and non-version path segments are replaced by a placeholder, e.g.::

        https://user:pw@llm.corp.example.com:8443/team-a/v1?key=x
        -> https://***.***.***.com:****/***/v1

    Never raises; input that cannot be parsed becomes ``***``.
    """
    try:
        if not isinstance(url, str) or not url.strip():
            return MASK
        url = url.strip()
        if url.rstrip("/") == DEFAULT_OPENAI_BASE_URL:
            return url

        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            return _mask_path(url) or MASK

        hostinfo = parts.netloc.rpartition("@")[2]
        match = _HOSTINFO.match(hostinfo)
        if match is None:
            return f"{parts.scheme}://{MASK}"
        host, port = match.groups()

        masked = f"{parts.scheme}://{_mask_host(host)}"
        if port is not None:
            masked += f":{PORT_MASK}"
        return masked + _mask_path(parts.path)
    except Exception as e:
        logger.debug(f"Could not parse endpoint for desensitization: {type(e).__name__}")
        return MASK
