"""Boundary validation for admin-supplied wager payloads."""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter, ValidationError

from ..exceptions import WagerValidationError
from .models import WAGER_KINDS, CreateWagerInput, WagerPatch

_CREATE_ADAPTER: TypeAdapter[CreateWagerInput] = TypeAdapter(CreateWagerInput)
_PATCH_ADAPTER: TypeAdapter[WagerPatch] = TypeAdapter(WagerPatch)
_KIND_ERROR = f"kind must be one of: {', '.join(WAGER_KINDS)}"


def format_validation_errors(exc: ValidationError) -> list[str]:
    """Flatten pydantic errors into `field.path: message` strings."""
    messages: list[str] = []
    for error in exc.errors():
        if error["type"] in {"union_tag_not_found", "union_tag_invalid"}:
            messages.append(_KIND_ERROR)
            continue
        loc = list(error["loc"])
        # Discriminated unions prefix the location with the matched tag.
        if loc and loc[0] in WAGER_KINDS:
            loc = loc[1:]
        path = ".".join(str(part) for part in loc)
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{path}: {message}" if path else message)
    return messages


def validate_create_payload(payload: Any) -> CreateWagerInput:
    """Validate a raw creation payload, collecting every problem at once."""
    if not isinstance(payload, dict):
        raise WagerValidationError(["Request body must be a JSON object"])
    try:
        return _CREATE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise WagerValidationError(format_validation_errors(exc)) from exc


def validate_patch_payload(payload: Any) -> WagerPatch:
    """Validate a raw patch payload; unknown fields are rejected."""
    if not isinstance(payload, dict):
        raise WagerValidationError(["Request body must be a JSON object"])
    try:
        return _PATCH_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise WagerValidationError(format_validation_errors(exc)) from exc
