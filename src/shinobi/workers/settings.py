"""arq worker settings module.

Import path for arq CLI: arq shinobi.workers.settings.WorkerSettings
"""

from __future__ import annotations

from shinobi.workers.daily_check import WorkerSettings

__all__ = ["WorkerSettings"]
