"""
Input sanitization and validation for proxied operations.

String and enum fields fail hard with ValidationIssue. Numeric bounds
(result limit, token budget) fall back to defaults instead.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Optional

from engram_mcp.config import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_RESULT_LIMIT,
    MAX_CONTENT_LENGTH,
    MAX_FOCUS_LENGTH,
    MAX_MAX_TOKENS,
    MAX_METADATA_BYTES,
    MAX_QUERY_LENGTH,
    MAX_RESULT_LIMIT,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TAG_LENGTH,
    MAX_TAGS,
    MIN_MAX_TOKENS,
)
from engram_mcp.errors import ValidationIssue
from engram_mcp.models import (
    ContextArgs,
    EmptyArgs,
    ForgetArgs,
    Importance,
    ObserveArgs,
    RecallArgs,
    RememberArgs,
    SearchArgs,
)

VALID_LAYERS = ("SESSION", "SEMANTIC", "CORE", "META")
VALID_IMPORTANCE = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

# Non-printable ASCII except tab (\x09), newline (\x0a) and carriage return (\x0d)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,128}")


def sanitize_text(value: str) -> str:
    return _CONTROL_CHARS.sub("", value).strip()


def validate_text(value: Any, field: str, max_len: int) -> str:
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="invalid_type")
    cleaned = sanitize_text(value)
    if not cleaned:
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(cleaned) > max_len:
        raise ValidationIssue(
            f"{field} exceeds maximum length of {max_len} characters",
            field=field,
            error_type="max_length",
        )
    return cleaned


def validate_optional_text(value: Any, field: str, max_len: int) -> Optional[str]:
    if value is None:
        return None
    return validate_text(value, field, max_len)


def validate_content(value: Any, field: str = "content") -> str:
    return validate_text(value, field, MAX_CONTENT_LENGTH)


def validate_query(value: Any, field: str = "query") -> str:
    return validate_text(value, field, MAX_QUERY_LENGTH)


def validate_id(value: Any, field: str = "memory_id") -> str:
    if not isinstance(value, str) or not _ID_PATTERN.fullmatch(value):
        raise ValidationIssue(
            "Invalid ID format. Must be 1-128 alphanumeric characters, hyphens, or underscores.",
            field=field,
            error_type="invalid_id",
        )
    return value


def _validate_choice(value: Any, field: str, allowed: tuple[str, ...]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    upper = value.strip().upper()
    if upper not in allowed:
        raise ValidationIssue(
            f"Invalid {field}. Must be one of: {', '.join(allowed)}",
            field=field,
            error_type="invalid_choice",
        )
    return upper


def validate_layer(value: Any, field: str = "layer") -> Optional[str]:
    return _validate_choice(value, field, VALID_LAYERS)


def validate_importance(value: Any, field: str = "importance") -> Optional[Importance]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationIssue(f"{field} must be a number or a level name", field=field, error_type="invalid_type")
    if isinstance(value, (int, float)):
        if math.isnan(value) or value < 0.0 or value > 1.0:
            raise ValidationIssue(f"{field} must be between 0.0 and 1.0", field=field, error_type="out_of_range")
        return float(value)
    return _validate_choice(value, field, VALID_IMPORTANCE)


def validate_layers(values: Any, field: str = "layers") -> Optional[tuple[str, ...]]:
    if values is None:
        return None
    if not isinstance(values, (list, tuple)):
        raise ValidationIssue(f"{field} must be an array", field=field, error_type="invalid_type")
    layers = []
    for item in values:
        if item is None:
            raise ValidationIssue(f"Invalid layer in {field}", field=field, error_type="invalid_choice")
        layers.append(validate_layer(item, field=field))
    return tuple(layers)


def validate_tags(values: Any, field: str = "tags") -> Optional[tuple[str, ...]]:
    if values is None:
        return None
    if not isinstance(values, (list, tuple)):
        raise ValidationIssue(f"{field} must be an array", field=field, error_type="invalid_type")
    if len(values) > MAX_TAGS:
        raise ValidationIssue(f"Maximum {MAX_TAGS} tags allowed", field=field, error_type="max_items")
    tags = []
    for item in values:
        if not isinstance(item, str):
            raise ValidationIssue("Each tag must be a string", field=field, error_type="invalid_type")
        cleaned = sanitize_text(item)
        if not cleaned:
            raise ValidationIssue("Empty tags not allowed", field=field, error_type="required")
        if len(cleaned) > MAX_TAG_LENGTH:
            raise ValidationIssue(
                f"Tag exceeds {MAX_TAG_LENGTH} characters",
                field=field,
                error_type="max_length",
            )
        tags.append(cleaned)
    return tuple(tags)


def validate_metadata(metadata: Any, field: str = "metadata") -> Optional[dict]:
    if metadata is None:
        return None
    if not isinstance(metadata, dict):
        raise ValidationIssue(f"{field} must be an object", field=field, error_type="invalid_type")
    try:
        encoded = json.dumps(metadata)
    except (TypeError, ValueError) as exc:
        raise ValidationIssue(f"{field} must be JSON-serializable", field=field, error_type="invalid_type") from exc
    if len(encoded.encode("utf-8")) > MAX_METADATA_BYTES:
        raise ValidationIssue(
            f"{field} exceeds max size {MAX_METADATA_BYTES} bytes",
            field=field,
            error_type="max_bytes",
        )
    # Detached copy so later mutation of the caller's dict cannot leak into the request
    return json.loads(encoded)


def _coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def validate_limit(
    value: Any,
    max_value: int = MAX_RESULT_LIMIT,
    default: int = DEFAULT_RESULT_LIMIT,
) -> int:
    number = _coerce_number(value)
    if number is None or number < 1:
        return default
    return int(min(number, max_value))


def validate_max_tokens(
    value: Any,
    max_value: int = MAX_MAX_TOKENS,
    default: int = DEFAULT_MAX_TOKENS,
) -> int:
    number = _coerce_number(value)
    if number is None or number < MIN_MAX_TOKENS:
        return default
    return int(min(number, max_value))


# =============================================================================
# Per-operation argument builders
# =============================================================================

def build_remember_args(
    content: Any,
    layer: Any = None,
    importance: Any = None,
    tags: Any = None,
    source: Any = None,
    metadata: Any = None,
) -> RememberArgs:
    return RememberArgs(
        raw=validate_content(content),
        layer=validate_layer(layer),
        importance=validate_importance(importance),
        tags=validate_tags(tags),
        source=validate_optional_text(source, "source", MAX_SHORT_TEXT_LENGTH),
        metadata=validate_metadata(metadata),
    )


def build_recall_args(
    query: Any,
    layers: Any = None,
    limit: Any = None,
    tags: Any = None,
    min_importance: Any = None,
) -> RecallArgs:
    return RecallArgs(
        query=validate_query(query),
        layers=validate_layers(layers),
        limit=validate_limit(limit),
        tags=validate_tags(tags),
        min_importance=validate_importance(min_importance, field="min_importance"),
    )


def build_search_args(query: Any, entity_type: Any = None) -> SearchArgs:
    return SearchArgs(
        query=validate_query(query),
        entity_type=validate_optional_text(entity_type, "entity_type", MAX_SHORT_TEXT_LENGTH),
    )


def build_forget_args(memory_id: Any) -> ForgetArgs:
    return ForgetArgs(memory_id=validate_id(memory_id))


def build_context_args(max_tokens: Any = None, focus: Any = None, project_id: Any = None) -> ContextArgs:
    return ContextArgs(
        max_tokens=validate_max_tokens(max_tokens),
        focus=validate_optional_text(focus, "focus", MAX_FOCUS_LENGTH),
        project_id=validate_optional_text(project_id, "project_id", MAX_SHORT_TEXT_LENGTH),
    )


def build_observe_args(content: Any, source: Any = None, metadata: Any = None) -> ObserveArgs:
    return ObserveArgs(
        content=validate_content(content),
        source=validate_optional_text(source, "source", MAX_SHORT_TEXT_LENGTH),
        metadata=validate_metadata(metadata),
    )


def build_empty_args() -> EmptyArgs:
    return EmptyArgs()
