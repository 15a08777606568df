"""arq worker settings module.

Import path for arq CLI: arq anky.workers.settings.WorkerSettings
"""

from __future__ import annotations

from anky.workers.event_consumer import WorkerSettings

__all__ = ["WorkerSettings"]
