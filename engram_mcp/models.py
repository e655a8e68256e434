"""
Operation keys and validated argument sets passed to the request executor.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Optional, Union


class OperationKey(str, Enum):
    REMEMBER = "remember"
    RECALL = "recall"
    SEARCH = "search"
    FORGET = "forget"
    CONTEXT = "context"
    OBSERVE = "observe"
    HEALTH = "health"
    STATS = "stats"


Importance = Union[float, str]


def _compact(values: dict) -> dict:
    return {key: value for key, value in values.items() if value is not None}


@dataclass(frozen=True)
class EmptyArgs:
    def body(self) -> Optional[dict]:
        return None

    def path_params(self) -> dict:
        return {}


@dataclass(frozen=True)
class RememberArgs:
    raw: str
    layer: Optional[str] = None
    importance: Optional[Importance] = None
    tags: Optional[tuple[str, ...]] = None
    source: Optional[str] = None
    metadata: Optional[dict] = field(default=None, hash=False, compare=False)

    def body(self) -> dict:
        return _compact({
            "raw": self.raw,
            "layer": self.layer,
            "importance": self.importance,
            "tags": list(self.tags) if self.tags is not None else None,
            "source": self.source,
            "metadata": self.metadata,
        })

    def path_params(self) -> dict:
        return {}


@dataclass(frozen=True)
class RecallArgs:
    query: str
    limit: int
    layers: Optional[tuple[str, ...]] = None
    tags: Optional[tuple[str, ...]] = None
    min_importance: Optional[Importance] = None

    def body(self) -> dict:
        return _compact({
            "query": self.query,
            "layers": list(self.layers) if self.layers is not None else None,
            "limit": self.limit,
            "tags": list(self.tags) if self.tags is not None else None,
            "minImportance": self.min_importance,
        })

    def path_params(self) -> dict:
        return {}


@dataclass(frozen=True)
class SearchArgs:
    query: str
    entity_type: Optional[str] = None

    def body(self) -> dict:
        return _compact({"query": self.query, "entityType": self.entity_type})

    def path_params(self) -> dict:
        return {}


@dataclass(frozen=True)
class ForgetArgs:
    memory_id: str

    def body(self) -> Optional[dict]:
        return None

    def path_params(self) -> dict:
        return {"id": self.memory_id}


@dataclass(frozen=True)
class ContextArgs:
    max_tokens: int
    focus: Optional[str] = None
    project_id: Optional[str] = None

    def body(self) -> dict:
        return _compact({
            "maxTokens": self.max_tokens,
            "focus": self.focus,
            "projectId": self.project_id,
        })

    def path_params(self) -> dict:
        return {}


@dataclass(frozen=True)
class ObserveArgs:
    content: str
    source: Optional[str] = None
    metadata: Optional[dict] = field(default=None, hash=False, compare=False)

    def body(self) -> dict:
        return _compact({
            "content": self.content,
            "source": self.source,
            "metadata": self.metadata,
        })

    def path_params(self) -> dict:
        return {}


ValidatedArgs = Union[
    EmptyArgs,
    RememberArgs,
    RecallArgs,
    SearchArgs,
    ForgetArgs,
    ContextArgs,
    ObserveArgs,
]


def describe_args(args: Any) -> dict:
    """Field names that were supplied, for logging without payload contents."""
    return {
        "fields": sorted(f.name for f in fields(args) if getattr(args, f.name) is not None),
    }
