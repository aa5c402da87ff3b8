"""Job scheduling for province pulls."""

from nobetci.jobs.scheduler import Job, JobScheduler, RetryPolicy

__all__ = ["Job", "JobScheduler", "RetryPolicy"]
