"""Pydantic models describing the ProductBoard API envelopes."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _id_to_str(value: object) -> object:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class ProductBoardBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PageLinks(ProductBoardBaseModel):
    next: str | None = None


class ListEnvelope(ProductBoardBaseModel):
    """``{"data": [...], "links": {"next": ...}}`` as returned by list endpoints."""

    data: list[dict[str, object]]
    links: PageLinks | None = None

    @property
    def next_url(self) -> str | None:
        return self.links.next if self.links is not None else None


class DocumentEnvelope(ProductBoardBaseModel):
    data: dict[str, object]


class RecordStub(ProductBoardBaseModel):
    """The few fields the connector needs to track changes."""

    id: str
    type: str | None = None
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    _coerce_id = field_validator("id", mode="before")(_id_to_str)


class LinkedFeature(ProductBoardBaseModel):
    id: str

    _coerce_id = field_validator("id", mode="before")(_id_to_str)


class IdRef(ProductBoardBaseModel):
    id: str

    _coerce_id = field_validator("id", mode="before")(_id_to_str)


class ParentRefs(ProductBoardBaseModel):
    product: IdRef | None = None
    component: IdRef | None = None
    feature: IdRef | None = None


class HierarchyRefs(ProductBoardBaseModel):
    """Where a component or feature sits below its product.

    Features only name their direct parent; the product is reached through the
    component chain.
    """

    id: str
    parent: ParentRefs | None = None
    product: IdRef | None = None
    product_id: str | None = None

    _coerce_ids = field_validator("id", "product_id", mode="before")(_id_to_str)

    @property
    def product_ref(self) -> str | None:
        if self.product is not None:
            return self.product.id
        if self.product_id:
            return self.product_id
        if self.parent is not None and self.parent.product is not None:
            return self.parent.product.id
        return None

    @property
    def component_ref(self) -> str | None:
        if self.parent is not None and self.parent.component is not None:
            return self.parent.component.id
        return None

    @property
    def parent_feature_ref(self) -> str | None:
        if self.parent is not None and self.parent.feature is not None:
            return self.parent.feature.id
        return None
