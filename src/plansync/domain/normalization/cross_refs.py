"""Cross-system link matching.

A reference is resolved only when the link entries name exactly one target. The
same target linked twice counts once; no match, or several targets, leaves the
reference unresolved.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Final, cast

if TYPE_CHECKING:
    from .extractors import Payload

PLANNING_HOST_MARKER: Final[str] = "productboard.com"
TRACKING_HOST_MARKERS: Final[tuple[str, ...]] = ("dev.azure.com", "visualstudio.com")

PLANNING_FEATURE_PATTERN: Final[re.Pattern[str]] = re.compile(r"features/([a-f0-9-]+)")
TRACKING_ITEM_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"/_workitems/edit/(\d+)"),
    re.compile(r"/workItems/(\d+)", re.IGNORECASE),
)

HYPERLINK_REL: Final[str] = "Hyperlink"
TRACKING_INTEGRATION_TYPES: Final[frozenset[str]] = frozenset({"azure-devops", "hyperlink"})


def _entries(payload: Payload, name: str) -> list[Mapping[str, object]]:
    value = payload.get(name)
    if isinstance(value, Mapping):
        # ProductBoard list envelopes nest entries under ``data``
        value = cast(Mapping[str, object], value).get("data")
    if not isinstance(value, list):
        return []
    return [
        cast(Mapping[str, object], entry)
        for entry in cast(list[object], value)
        if isinstance(entry, Mapping)
    ]


def _url_of(entry: Mapping[str, object]) -> str | None:
    for name in ("url", "href", "externalUrl"):
        value = entry.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    links = entry.get("links")
    if isinstance(links, Mapping):
        html = cast(Mapping[str, object], links).get("html")
        if isinstance(html, str) and html.strip():
            return html.strip()
    return None


def _single(matches: list[str]) -> str | None:
    distinct = list(dict.fromkeys(matches))
    return distinct[0] if len(distinct) == 1 else None


def tracking_item_ref(payload: Payload) -> str | None:
    """Planning feature id linked from a tracking work item."""

    matches: list[str] = []
    for relation in _entries(payload, "relations"):
        if relation.get("rel") != HYPERLINK_REL:
            continue
        url = _url_of(relation)
        if url is None or PLANNING_HOST_MARKER not in url:
            continue
        found = PLANNING_FEATURE_PATTERN.search(url)
        if found:
            matches.append(found.group(1))
    return _single(matches)


def _tracking_id_from_url(url: str) -> str | None:
    if not any(marker in url for marker in TRACKING_HOST_MARKERS):
        return None
    for pattern in TRACKING_ITEM_PATTERNS:
        found = pattern.search(url)
        if found:
            return found.group(1)
    return None


def planning_item_ref(payload: Payload) -> str | None:
    """Work item id linked from a planning record's integrations or links."""

    matches: list[str] = []
    for entry in (*_entries(payload, "integrations"), *_entries(payload, "links")):
        entry_type = entry.get("type")
        if not isinstance(entry_type, str) or entry_type.lower() not in TRACKING_INTEGRATION_TYPES:
            continue
        url = _url_of(entry)
        ref = _tracking_id_from_url(url) if url else None
        if ref is None and entry_type.lower() == "azure-devops":
            external_id = entry.get("externalId")
            if isinstance(external_id, int | str) and str(external_id).strip().isdigit():
                ref = str(external_id).strip()
        if ref is not None:
            matches.append(ref)
    return _single(matches)
