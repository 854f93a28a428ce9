from __future__ import annotations

from techplan.data.db import Db
from techplan.data.repository import Repository

__all__ = ["Db", "Repository"]
