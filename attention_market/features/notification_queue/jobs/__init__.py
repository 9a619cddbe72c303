"""
Job runners for the notification queue feature.
"""

from .process_job import process_messages_loop, start_process_messages_scheduler
from .reaper_job import reap_stale_processing, reaper_loop, start_reaper_scheduler

__all__ = [
    "process_messages_loop",
    "reap_stale_processing",
    "reaper_loop",
    "start_process_messages_scheduler",
    "start_reaper_scheduler",
]
