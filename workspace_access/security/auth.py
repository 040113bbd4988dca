from __future__ import annotations

import logging

from fastapi import Request

from workspace_access.access.errors import SessionInvalid
from workspace_access.security.config import AccessPolicy

logger = logging.getLogger(__name__)


def extract_bearer_token(request: Request, policy: AccessPolicy) -> str:
    """
    Pull the opaque session token out of ``Authorization: Bearer <token>``.

    - Header name and prefix come from the ``auth`` section of the policy.
    - A missing, malformed or empty header is reported as ``SessionInvalid``;
      the token itself is never logged.
    """

    header_name = policy.auth.authorization_header
    bearer_prefix = policy.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing %s header (auth required) path=%s method=%s", header_name, request.url.path, request.method)
        raise SessionInvalid("Authentication required")

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid %s header format path=%s method=%s", header_name, request.url.path, request.method)
        raise SessionInvalid(f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.")

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise SessionInvalid(f"Invalid {header_name}. Missing token after '{bearer_prefix}'.")

    return token


def client_address(request: Request) -> str:
    """Origin address used by the login throttle."""
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"
