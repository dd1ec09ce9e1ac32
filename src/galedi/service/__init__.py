"""
Long-running agent: periodic sync jobs and the HTTP status API.
"""

from galedi.service.scheduler import IntervalSchedule, PeriodicJob
from galedi.service.server import SyncService, create_app, run_service

__all__ = ["IntervalSchedule", "PeriodicJob", "SyncService", "create_app", "run_service"]
