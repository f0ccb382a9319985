from __future__ import annotations

from sqlalchemy import JSON, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from itsadmin.models.base import Base, TimestampMixin


class FilterPreference(Base, TimestampMixin):
    """Last permission filter chosen for an ItemTypeSet, globally or within a project.

    ``key`` is ``"{item_type_set_id}:{project_id or 'global'}"``.
    """

    __tablename__ = "filter_preferences"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    item_type_set_id: Mapped[int] = mapped_column(Integer, index=True)
    project_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    filters: Mapped[dict] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), default=dict)
