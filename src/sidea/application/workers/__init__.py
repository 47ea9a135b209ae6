"""Background workers."""

from sidea.application.workers.background_tasks import BackgroundTaskRunner

__all__ = ["BackgroundTaskRunner"]
