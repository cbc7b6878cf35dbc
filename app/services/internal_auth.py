from __future__ import annotations

import secrets

from fastapi import Request

INTERNAL_TOKEN_HEADER = "X-Internal-Token"
USER_ID_HEADER = "X-User-Id"


def is_valid_internal_token(*, expected_token: str, received_token: str | None) -> bool:
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token, received_token)


def _parse_user_id(value: str | None) -> int | None:
    if value is None:
        return None
    candidate = value.strip()
    if not candidate.isdigit():
        return None
    user_id = int(candidate)
    return user_id if user_id > 0 else None


def resolve_caller_user_id(request: Request, *, expected_token: str) -> int | None:
    """Return the gateway-asserted user id, or None when the request is not trusted."""
    header_token = request.headers.get(INTERNAL_TOKEN_HEADER)
    if not is_valid_internal_token(expected_token=expected_token, received_token=header_token):
        return None
    return _parse_user_id(request.headers.get(USER_ID_HEADER))
