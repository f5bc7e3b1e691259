"""HTTP connector for the ProductBoard public API."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from plansync.adapters.http_resilience import (
    ResilienceConfig,
    ResilientClient,
    default_client_factory,
    fetch_error_from_exception,
)
from plansync.config.productboard import ProductBoardConfig, get_productboard_config
from plansync.domain.errors import NotFound
from plansync.domain.model import ItemType, SourceSystem
from plansync.domain.ports.connector import ChangeMarker
from plansync.domain.time_windows import ensure_aware

from .schema import DocumentEnvelope, HierarchyRefs, LinkedFeature, ListEnvelope, RecordStub

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from datetime import datetime

    from plansync.domain.ports.connector import SourceConnector

log = getLogger(__name__)

ENTITY_PATHS: dict[ItemType, str] = {
    ItemType.PRODUCT: "/products",
    ItemType.INITIATIVE: "/initiatives",
    ItemType.COMPONENT: "/components",
    ItemType.FEATURE: "/features",
    ItemType.SUBFEATURE: "/features",
}

# both feature kinds share one endpoint and are told apart by their ``type`` field
_FEATURE_KINDS: dict[ItemType, str] = {
    ItemType.FEATURE: "feature",
    ItemType.SUBFEATURE: "subfeature",
}

type Document = dict[str, object]


def _entity_path(entity_type: ItemType) -> str:
    try:
        return ENTITY_PATHS[entity_type]
    except KeyError:
        raise ValueError(f"ProductBoard does not serve {entity_type.label} records") from None


def _parse[M: BaseModel](model: type[M], payload: object) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise fetch_error_from_exception(exc, source="productboard") from exc


def _stub(document: Mapping[str, object]) -> RecordStub:
    return _parse(RecordStub, document)


def _is_kind(document: Mapping[str, object], entity_type: ItemType) -> bool:
    kind = _FEATURE_KINDS.get(entity_type)
    if kind is None:
        return True
    raw_type = _stub(document).type
    if raw_type is None:
        # untyped feature documents are plain features
        return entity_type is ItemType.FEATURE
    return raw_type.strip().lower().replace("-", "") == kind


def _changed_since(stub: RecordStub, since: datetime | None) -> bool:
    if since is None or stub.updated_at is None:
        return True
    return ensure_aware(stub.updated_at) > since


def _products_by_component(components: Sequence[Mapping[str, object]]) -> dict[str, str]:
    """Map each component to the product at the top of its component chain."""

    nodes = {
        refs.id: refs for refs in (_parse(HierarchyRefs, component) for component in components)
    }
    products: dict[str, str] = {}
    for component_id in nodes:
        chain: list[str] = []
        current: str | None = component_id
        product: str | None = None
        while current is not None and current not in chain:
            if current in products:
                product = products[current]
                break
            node = nodes.get(current)
            if node is None:
                break
            chain.append(current)
            product = node.product_ref
            if product is not None:
                break
            current = node.component_ref
        if product is not None:
            products.update(dict.fromkeys(chain, product))
    return products


@dataclass(slots=True)
class ProductBoardConnector:
    """PLANNING connector.

    ProductBoard has no delta endpoint, so ``list_changes`` pages through the whole
    collection and filters on ``updatedAt``. The documents it read are kept until
    the next listing so ``fetch`` does not have to request them again. Features
    only name their component or parent feature, so the connector adds the
    ``product_id`` it finds at the top of the component chain.
    """

    config: ProductBoardConfig = field(default_factory=get_productboard_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=default_client_factory
    )
    _documents: dict[ItemType, dict[str, Document]] = field(
        default_factory=dict["ItemType", "dict[str, Document]"], init=False, repr=False
    )

    @property
    def source_system(self) -> SourceSystem:
        return SourceSystem.PLANNING

    async def list_changes(
        self,
        entity_type: ItemType,
        *,
        since: datetime | None,
    ) -> Sequence[ChangeMarker]:
        path = _entity_path(entity_type)
        async with self.client_factory(self.config.resilience) as client:
            listed = await self._list_documents(client, path)
            documents = [document for document in listed if _is_kind(document, entity_type)]
            changed = [document for document in documents if _changed_since(_stub(document), since)]
            if entity_type in _FEATURE_KINDS:
                await self._attach_products(client, changed, known=listed)
                if self.config.link_initiatives:
                    await self._attach_initiatives(client, changed)
                if self.config.include_integrations:
                    await self._attach_integrations(client, changed)

        cache: dict[str, Document] = {}
        markers: list[ChangeMarker] = []
        for document in changed:
            stub = _stub(document)
            cache[stub.id] = document
            changed_at = ensure_aware(stub.updated_at) if stub.updated_at else None
            markers.append(ChangeMarker(stub.id, changed_at))
        self._documents[entity_type] = cache
        log.info(
            f"ProductBoard {path}: {len(markers)} of {len(documents)} "
            f"{entity_type.label.lower()} records changed"
        )
        return markers

    async def fetch(
        self,
        entity_type: ItemType,
        *,
        since: datetime | None,
        ids: Sequence[str],
    ) -> Sequence[Mapping[str, object]]:
        _ = since
        path = _entity_path(entity_type)
        cache = self._documents.get(entity_type, {})
        documents: list[Document] = []
        missing: list[str] = []
        for external_id in ids:
            document = cache.get(external_id)
            if document is None:
                missing.append(external_id)
            else:
                documents.append(document)
        if not missing:
            return documents

        async with self.client_factory(self.config.resilience) as client:
            fetched = await asyncio.gather(
                *(self._get_document(client, f"{path}/{external_id}") for external_id in missing)
            )
            found = [document for document in fetched if document is not None]
            if entity_type in _FEATURE_KINDS:
                await self._attach_products(client, found, known=found)
                if self.config.include_integrations:
                    await self._attach_integrations(client, found)
        documents.extend(found)
        return documents

    async def _list_documents(self, client: ResilientClient, path: str) -> list[Document]:
        documents: list[Document] = []
        url: str | None = path
        seen: set[str] = set()
        while url is not None and url not in seen:
            seen.add(url)
            envelope = _parse(ListEnvelope, await client.request_json("GET", url))
            documents.extend(envelope.data)
            url = envelope.next_url
        return documents

    async def _get_document(self, client: ResilientClient, url: str) -> Document | None:
        try:
            payload = await client.request_json("GET", url)
        except NotFound:
            log.debug(f"ProductBoard {url} no longer exists")
            return None
        return _parse(DocumentEnvelope, payload).data

    async def _attach_products(
        self,
        client: ResilientClient,
        documents: Sequence[Document],
        *,
        known: Sequence[Document],
    ) -> None:
        features = {_stub(document).id: document for document in known}
        pending: list[tuple[Document, str]] = []
        for document in documents:
            refs = _parse(HierarchyRefs, document)
            parent_id = refs.parent_feature_ref
            if refs.product_ref is None and refs.component_ref is None and parent_id:
                # subfeatures inherit the product of their parent feature
                parent = features.get(parent_id)
                if parent is None:
                    parent = await self._get_document(
                        client, f"{ENTITY_PATHS[ItemType.FEATURE]}/{parent_id}"
                    )
                if parent is None:
                    continue
                features[parent_id] = parent
                refs = _parse(HierarchyRefs, parent)
                if refs.product_ref is not None:
                    document["product_id"] = refs.product_ref
                    continue
            if refs.product_ref is None and refs.component_ref is not None:
                pending.append((document, refs.component_ref))
        if not pending:
            return

        components = await self._list_documents(client, ENTITY_PATHS[ItemType.COMPONENT])
        products = _products_by_component(components)
        for document, component_id in pending:
            product_id = products.get(component_id)
            if product_id is None:
                log.debug(f"ProductBoard component {component_id} has no product")
                continue
            document["product_id"] = product_id

    async def _attach_initiatives(
        self, client: ResilientClient, documents: Sequence[Document]
    ) -> None:
        if not documents:
            return
        initiatives = await self._list_documents(client, ENTITY_PATHS[ItemType.INITIATIVE])
        initiative_ids = [_stub(initiative).id for initiative in initiatives]
        linked = await asyncio.gather(
            *(
                self._list_documents(client, f"/links/initiatives/{initiative_id}/features")
                for initiative_id in initiative_ids
            )
        )
        by_feature: defaultdict[str, list[str]] = defaultdict(list)
        for initiative_id, links in zip(initiative_ids, linked, strict=True):
            for link in links:
                by_feature[_parse(LinkedFeature, link).id].append(initiative_id)
        for document in documents:
            document["initiative_ids"] = sorted(by_feature.get(_stub(document).id, ()))

    async def _attach_integrations(
        self, client: ResilientClient, documents: Sequence[Document]
    ) -> None:
        integrations = await asyncio.gather(
            *(
                self._list_documents(client, f"/features/{_stub(document).id}/integrations")
                for document in documents
            )
        )
        for document, entries in zip(documents, integrations, strict=True):
            document["integrations"] = entries


if TYPE_CHECKING:
    _connector_check: SourceConnector = ProductBoardConnector()
