"""Builders for raw ProductBoard and Azure DevOps payloads."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

DEFAULT_UPDATED_AT = "2024-05-01T10:00:00Z"


def pb_product(
    product_id: str, *, name: str = "Product", updated_at: str = DEFAULT_UPDATED_AT
) -> dict[str, object]:
    return {"id": product_id, "name": name, "updatedAt": updated_at}


def pb_initiative(
    initiative_id: str, *, name: str = "Initiative", updated_at: str = DEFAULT_UPDATED_AT
) -> dict[str, object]:
    return {"id": initiative_id, "name": name, "updatedAt": updated_at}


def pb_component(
    component_id: str,
    *,
    product_id: str | None = None,
    parent_component_id: str | None = None,
    name: str = "Component",
    updated_at: str = DEFAULT_UPDATED_AT,
) -> dict[str, object]:
    payload: dict[str, object] = {"id": component_id, "name": name, "updatedAt": updated_at}
    parent: dict[str, object] = {}
    if product_id is not None:
        parent["product"] = {"id": product_id}
    if parent_component_id is not None:
        parent["component"] = {"id": parent_component_id}
    if parent:
        payload["parent"] = parent
    return payload


def pb_feature(
    feature_id: str,
    *,
    component_id: str | None = None,
    product_id: str | None = None,
    parent_feature_id: str | None = None,
    initiative_ids: Sequence[str] = (),
    status: object = None,
    work_item_urls: Sequence[str] = (),
    name: str = "Feature",
    updated_at: str = DEFAULT_UPDATED_AT,
) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": feature_id,
        "type": "subfeature" if parent_feature_id is not None else "feature",
        "name": name,
        "updatedAt": updated_at,
    }
    if status is not None:
        payload["status"] = status
    parent: dict[str, object] = {}
    if component_id is not None:
        parent["component"] = {"id": component_id}
    if parent_feature_id is not None:
        parent["feature"] = {"id": parent_feature_id}
    if parent:
        payload["parent"] = parent
    if product_id is not None:
        payload["product"] = {"id": product_id}
    if initiative_ids:
        payload["initiative_ids"] = list(initiative_ids)
    if work_item_urls:
        payload["integrations"] = [
            {"type": "azure-devops", "url": url} for url in work_item_urls
        ]
    return payload


def work_item_url(work_item_id: int | str) -> str:
    return f"https://dev.azure.com/acme/roadmap/_workitems/edit/{work_item_id}"


def feature_url(feature_id: str) -> str:
    return f"https://acme.productboard.com/feature-board/planning/features/{feature_id}"


def ado_work_item(
    work_item_id: int,
    *,
    rev: int = 1,
    title: str | None = "Work item",
    state: object = "Active",
    parent_id: int | None = None,
    feature_urls: Sequence[str] = (),
    changed_date: str = DEFAULT_UPDATED_AT,
) -> dict[str, object]:
    fields: dict[str, object] = {
        "System.Id": work_item_id,
        "System.ChangedDate": changed_date,
    }
    if title is not None:
        fields["System.Title"] = title
    if state is not None:
        fields["System.State"] = state
    if parent_id is not None:
        fields["System.Parent"] = parent_id
    relations = [
        {"rel": "Hyperlink", "url": url, "attributes": {"comment": ""}} for url in feature_urls
    ]
    payload: dict[str, object] = {"id": work_item_id, "rev": rev, "fields": fields}
    if relations:
        payload["relations"] = relations
    return payload
