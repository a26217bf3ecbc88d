"""
Background Jobs Module

Handles scheduled tasks for:
- LMS retry ledger replay
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, process_lms_retry_queue

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "process_lms_retry_queue",
]
