"""
FastAPI dependencies that validate a JSON body before the handler runs.

On failure they raise ``PayloadValidationError`` (rendered as HTTP 400 by
``gridlog.errors``); on success the handler receives the sanitized body.
"""
from typing import Any, Callable, Dict

from fastapi import Body

from .errors import PayloadValidationError
from .validation import (
    sanitize_microscope_payload,
    sanitize_record,
    sanitize_session_payload,
    validate_microscope_payload,
    validate_record,
    validate_session_payload,
)


def validated_record(table_name: str, partial: bool = False) -> Callable[..., Dict[str, Any]]:
    def dependency(body: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        errors = validate_record(table_name, body, partial=partial)
        if errors:
            raise PayloadValidationError(errors)
        return sanitize_record(table_name, body)

    return dependency


def validated_session_payload(body: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    # A payload without a session section is checked as an empty one
    payload = body if body.get("session") is not None else {**body, "session": {}}
    errors = validate_session_payload(payload)
    if errors:
        raise PayloadValidationError(errors)
    return sanitize_session_payload(payload)


def validated_microscope_payload(body: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    errors = validate_microscope_payload(body)
    if errors:
        raise PayloadValidationError(errors)
    return sanitize_microscope_payload(body)
