from __future__ import annotations

from typing import Any

from itsadmin.schemas.common import CamelModel


def _nested_id(data: dict, nested_key: str, flat_key: str) -> Any:
    nested = data.get(nested_key)
    if isinstance(nested, dict) and nested.get("id") is not None:
        return nested["id"]
    return data.get(flat_key)


class Configuration(CamelModel):
    """One (ItemType, Category, FieldSet, Workflow) tuple inside an ItemTypeSet."""

    id: int | None = None
    item_type_id: int
    category: str
    field_set_id: int | None = None
    workflow_id: int | None = None

    @classmethod
    def from_platform(cls, data: dict) -> Configuration:
        """Build from the platform's response shape, which nests related entities."""
        return cls(
            id=data.get("id"),
            item_type_id=_nested_id(data, "itemType", "itemTypeId"),
            category=data.get("category"),
            field_set_id=_nested_id(data, "fieldSet", "fieldSetId"),
            workflow_id=_nested_id(data, "workflow", "workflowId"),
        )

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {
            "itemTypeId": self.item_type_id,
            "category": self.category,
            "fieldSetId": self.field_set_id or None,
            "workflowId": self.workflow_id or None,
        }
        if self.id is not None:
            payload["id"] = self.id
        return payload


class ItemTypeSet(CamelModel):
    id: int
    name: str = ""
    description: str | None = None
    scope: str | None = None
    item_type_configurations: list[Configuration] = []

    @classmethod
    def from_platform(cls, data: dict) -> ItemTypeSet:
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            description=data.get("description"),
            scope=data.get("scope"),
            item_type_configurations=[
                Configuration.from_platform(c) for c in data.get("itemTypeConfigurations") or []
            ],
        )


def build_update_payload(
    name: str,
    description: str | None,
    configurations: list[Configuration],
    force_removal: bool = False,
) -> dict:
    """Body of ``PUT /item-type-sets/{id}``. ``forceRemoval`` is omitted unless set."""
    payload: dict[str, Any] = {
        "name": name,
        "description": description,
        "itemTypeConfigurations": [c.to_payload() for c in configurations],
    }
    if force_removal:
        payload["forceRemoval"] = True
    return payload
