"""HTTP error helpers for extracting upload server error details."""

from __future__ import annotations

from typing import Any

import requests


def extract_error_detail(response: requests.Response) -> str | None:
    """Extract error detail from an HTTP error response.

    Understands ``{"error": {"message": ...}}`` bodies, ``{"detail": ...}``
    bodies and falls back to the raw response text.
    """
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text or None

    if not isinstance(payload, dict):
        return str(payload)

    error_payload = payload.get("error", payload.get("detail", payload))
    if not isinstance(error_payload, dict):
        return str(error_payload)

    return error_payload.get("message") or error_payload.get("exception")
