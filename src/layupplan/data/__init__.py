from __future__ import annotations

from layupplan.data.config_repository import ConfigRepository
from layupplan.data.db import Db

__all__ = ["ConfigRepository", "Db"]
