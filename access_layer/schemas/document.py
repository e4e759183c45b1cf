from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _DocumentModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ResourceIdentifier(_DocumentModel):
    type: str
    id: str


class RelationshipLinkage(_DocumentModel):
    data: ResourceIdentifier | list[ResourceIdentifier] | None


class ResourceObject(_DocumentModel):
    type: str
    id: str
    attributes: dict[str, Any]
    relationships: dict[str, RelationshipLinkage] | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.type, self.id)


class PageMeta(_DocumentModel):
    page_number: int
    page_size: int
    total_items: int


class ResourceDocument(_DocumentModel):
    """
    Response envelope: primary data, included related resources, page meta.

    Serialized with camelCase keys (`pageNumber`, `pageSize`, `totalItems`).
    """

    data: ResourceObject | list[ResourceObject] | None
    included: list[ResourceObject] = []
    meta: PageMeta | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
