# Assistant_Deps.py
# Description: Request-level dependencies for the learning assistant endpoint
#   - the shared LearningAssistantApplication handle
#   - client identity (rate limiter key)
#   - origin allow-list policy
# Imports
from typing import List, Optional
from urllib.parse import urlsplit
#
# 3rd-party Libraries
from fastapi import Request
from loguru import logger
#
# Local Imports
from learning_assistant_API.app.core.RAG.exceptions import ConfigError
from learning_assistant_API.app.core.RAG.rag_service.app import LearningAssistantApplication
#
#######################################################################################################################
#
# Static Variables
UNKNOWN_CLIENT = "unknown"
#
# Functions:

def get_learning_assistant(request: Request) -> LearningAssistantApplication:
    """Return the application instance created at start-up (see ``main.lifespan``)."""
    assistant = getattr(request.app.state, "learning_assistant", None)
    if assistant is None:
        logger.critical("Learning assistant requested before application start-up completed.")
        raise ConfigError("Learning assistant is not initialized")
    return assistant


def get_client_ip(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    First ``X-Forwarded-For`` hop, else the connection address, else the
    shared ``"unknown"`` bucket.
    """
    xff = (request.headers.get("x-forwarded-for") or "").strip()
    if xff:
        first_hop = xff.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def _origin_of(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


def get_request_origin(request: Request) -> str:
    """The ``Origin`` header, else the origin part of ``Referer``."""
    origin = request.headers.get("origin") or ""
    if origin:
        return origin
    referer = request.headers.get("referer") or ""
    if not referer:
        return ""
    return _origin_of(referer)


def is_allowed_origin(request: Request, allowed_origins: Optional[List[str]] = None) -> bool:
    """
    Decide whether the caller's origin may use the endpoint.

    With a configured allow-list the origin must be listed exactly. Without
    one, the origin's host must match ``X-Forwarded-Host`` (or ``Host``).
    Requests that carry no origin at all are refused.
    """
    origin = get_request_origin(request)
    if not origin:
        return False

    if allowed_origins:
        return origin in allowed_origins

    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or ""
    if not host:
        return False
    try:
        parts = urlsplit(origin)
        origin_host = _normalize_host(parts.netloc, parts.scheme)
    except ValueError:
        return False
    return bool(origin_host) and origin_host == _normalize_host(host)


def _normalize_host(host: str, scheme: str = "") -> str:
    """Lower-case ``host[:port]`` and drop a default port."""
    host = host.strip().lower()
    default_ports = {"http": (":80",), "https": (":443",)}.get(scheme.lower(), (":80", ":443"))
    for port in default_ports:
        if host.endswith(port):
            return host[:-len(port)]
    return host

#
# End of Assistant_Deps.py
#######################################################################################################################
