from itsadmin.models.base import Base
from itsadmin.models.filter_preference import FilterPreference

__all__ = ["Base", "FilterPreference"]
