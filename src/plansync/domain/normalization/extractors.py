"""Composable, typed field extractors.

Every extractor is a pure function of the raw payload. Combinators never raise on
unexpected shapes: a value that does not fit yields ``None`` so the table-level
defaults apply.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from plansync.domain.time_windows import parse_timestamp

if TYPE_CHECKING:
    from datetime import datetime

    from plansync.domain.model import ItemType, SourceSystem

type Payload = Mapping[str, object]
type Extractor[T] = Callable[[Payload], T]
type PathSegment = str | int


def lookup(payload: object, path: Sequence[PathSegment]) -> object | None:
    current: object | None = payload
    for segment in path:
        if isinstance(segment, int):
            if not isinstance(current, list):
                return None
            items = cast(list[object], current)
            if not -len(items) <= segment < len(items):
                return None
            current = items[segment]
        else:
            if not isinstance(current, Mapping):
                return None
            current = cast(Mapping[str, object], current).get(segment)
        if current is None:
            return None
    return current


def at(*path: PathSegment) -> Extractor[object | None]:
    if not path:
        raise ValueError("at() needs at least one path segment")

    def extract(payload: Payload) -> object | None:
        return lookup(payload, path)

    return extract


def first_of[T](*extractors: Extractor[T | None]) -> Extractor[T | None]:
    def extract(payload: Payload) -> T | None:
        for extractor in extractors:
            value = extractor(payload)
            if value is not None:
                return value
        return None

    return extract


def _as_text(value: object | None) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int | float):
        return str(value)
    return None


def text(extractor: Extractor[object | None]) -> Extractor[str | None]:
    def extract(payload: Payload) -> str | None:
        return _as_text(extractor(payload))

    return extract


def named(
    extractor: Extractor[object | None], *, default: str | None = None
) -> Extractor[str | None]:
    """Resolve objects by ``name``, then ``displayName``, then a bare string.

    ``default`` is returned when none of them yields text.
    """

    def extract(payload: Payload) -> str | None:
        value = extractor(payload)
        if isinstance(value, Mapping):
            mapping = cast(Mapping[str, object], value)
            found = _as_text(mapping.get("name")) or _as_text(mapping.get("displayName"))
        elif isinstance(value, str):
            found = _as_text(value)
        else:
            found = None
        return found if found is not None else default

    return extract


def identifier(extractor: Extractor[object | None]) -> Extractor[str | None]:
    """Accept a scalar id or an object carrying an ``id`` field."""

    def extract(payload: Payload) -> str | None:
        value = extractor(payload)
        if isinstance(value, Mapping):
            value = cast(Mapping[str, object], value).get("id")
        return _as_text(value)

    return extract


def integer(extractor: Extractor[object | None]) -> Extractor[int | None]:
    def extract(payload: Payload) -> int | None:
        value = extractor(payload)
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        return None

    return extract


def timestamp(extractor: Extractor[object | None]) -> Extractor[datetime | None]:
    def extract(payload: Payload) -> datetime | None:
        value = extractor(payload)
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            return parse_timestamp(value)
        except ValueError:
            return None

    return extract


def id_list(extractor: Extractor[object | None]) -> Extractor[tuple[str, ...]]:
    """Collect ids from a list of scalars or objects, dropping duplicates in order."""

    def extract(payload: Payload) -> tuple[str, ...]:
        value = extractor(payload)
        if not isinstance(value, list):
            return ()
        seen: dict[str, None] = {}
        for entry in cast(list[object], value):
            if isinstance(entry, Mapping):
                entry = cast(Mapping[str, object], entry).get("id")
            ref = _as_text(entry)
            if ref is not None:
                seen.setdefault(ref, None)
        return tuple(seen)

    return extract


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    extractor: Extractor[object]


@dataclass(frozen=True, slots=True)
class ExtractionTable:
    """Ordered field extractors for one ``(source system, item type)`` pair."""

    source_system: SourceSystem
    item_type: ItemType
    fields: tuple[FieldSpec, ...]

    def extract(self, payload: Payload) -> dict[str, object]:
        return {spec.name: spec.extractor(payload) for spec in self.fields}


__all__ = [
    "ExtractionTable",
    "Extractor",
    "FieldSpec",
    "Payload",
    "at",
    "first_of",
    "id_list",
    "identifier",
    "integer",
    "lookup",
    "named",
    "text",
    "timestamp",
]
