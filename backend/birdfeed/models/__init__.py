# Models package init
"""
Bird Feed Backend — ORM Models
===============================

Importing this package registers every table on `Base.metadata`
(used by Alembic --autogenerate and by the test suite's create_all).
"""

from birdfeed.models.agreement import UserAgreement
from birdfeed.models.bookmark import Bookmark
from birdfeed.models.haikubox import (
    HaikuboxActivityLog,
    HaikuboxDetection,
    HaikuboxSyncLog,
)
from birdfeed.models.photo import Photo
from birdfeed.models.species import RARITIES, Species
from birdfeed.models.user import AppSetting, User

__all__ = [
    "AppSetting",
    "Bookmark",
    "HaikuboxActivityLog",
    "HaikuboxDetection",
    "HaikuboxSyncLog",
    "Photo",
    "RARITIES",
    "Species",
    "User",
    "UserAgreement",
]
