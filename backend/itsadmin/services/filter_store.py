"""Durable per-ItemTypeSet storage of the last chosen permission filter."""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from itsadmin.models.filter_preference import FilterPreference
from itsadmin.schemas.permission import FilterSpec

logger = logging.getLogger(__name__)


def filter_key(item_type_set_id: int, project_id: int | None = None) -> str:
    return f"{item_type_set_id}:{project_id if project_id is not None else 'global'}"


class FilterStore(Protocol):
    async def load(self, item_type_set_id: int, project_id: int | None = None) -> FilterSpec | None:
        ...

    async def save(
        self, item_type_set_id: int, project_id: int | None, spec: FilterSpec
    ) -> None:
        ...

    async def clear(self, item_type_set_id: int, project_id: int | None = None) -> None:
        ...


class InMemoryFilterStore:
    def __init__(self) -> None:
        self._data: dict[str, dict] = {}

    async def load(self, item_type_set_id: int, project_id: int | None = None) -> FilterSpec | None:
        raw = self._data.get(filter_key(item_type_set_id, project_id))
        return FilterSpec.model_validate(raw) if raw is not None else None

    async def save(
        self, item_type_set_id: int, project_id: int | None, spec: FilterSpec
    ) -> None:
        self._data[filter_key(item_type_set_id, project_id)] = spec.model_dump(by_alias=True)

    async def clear(self, item_type_set_id: int, project_id: int | None = None) -> None:
        self._data.pop(filter_key(item_type_set_id, project_id), None)


class SqlFilterStore:
    """``FilterStore`` backed by the ``filter_preferences`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load(self, item_type_set_id: int, project_id: int | None = None) -> FilterSpec | None:
        async with self._session_factory() as db:
            pref = await db.get(FilterPreference, filter_key(item_type_set_id, project_id))
        if pref is None:
            return None
        try:
            return FilterSpec.model_validate(pref.filters or {})
        except ValidationError:
            logger.warning(
                "Discarding unreadable filter preference %s", pref.key,
                extra={"item_type_set_id": item_type_set_id},
            )
            return None

    async def save(
        self, item_type_set_id: int, project_id: int | None, spec: FilterSpec
    ) -> None:
        key = filter_key(item_type_set_id, project_id)
        async with self._session_factory() as db:
            pref = await db.get(FilterPreference, key)
            if pref is None:
                pref = FilterPreference(
                    key=key, item_type_set_id=item_type_set_id, project_id=project_id
                )
                db.add(pref)
            pref.filters = spec.model_dump(by_alias=True)
            await db.commit()

    async def clear(self, item_type_set_id: int, project_id: int | None = None) -> None:
        async with self._session_factory() as db:
            pref = await db.get(FilterPreference, filter_key(item_type_set_id, project_id))
            if pref is not None:
                await db.delete(pref)
                await db.commit()
