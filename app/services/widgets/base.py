"""Widget handler contract shared by every cockpit widget."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from pydantic import BaseModel


class WidgetComputeError(Exception):
    """The widget's declared inputs are unusable."""


@dataclass(frozen=True)
class WidgetInput:
    """Read-only view handed to a compute function."""

    strategy_id: str
    phase: str
    pillars: Mapping[str, dict]
    vertical: str | None = None


@dataclass(frozen=True)
class WidgetDescriptor:
    id: str
    name: str
    description: str
    category: str
    required_pillars: tuple[str, ...]
    minimum_phase: str
    output_schema: type[BaseModel]
    size: str = "medium"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "required_pillars": list(self.required_pillars),
            "minimum_phase": self.minimum_phase,
            "size": self.size,
        }


@dataclass(frozen=True)
class WidgetHandler:
    descriptor: WidgetDescriptor
    compute: Callable[[WidgetInput], dict] = field(repr=False)


def filled(value) -> bool:
    """True for a non-blank string or a non-empty list/dict."""
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return False


def as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def as_list(value) -> list:
    return value if isinstance(value, list) else []


def text(value) -> str:
    return value.strip() if isinstance(value, str) else ""
