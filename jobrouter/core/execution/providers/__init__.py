from .base import ExecutionProvider
from .cloud_tasks import CloudTasksProvider
from .cloud_run_jobs import CloudRunJobsProvider
from .cloud_batch import CloudBatchProvider

__all__ = [
    "ExecutionProvider",
    "CloudTasksProvider",
    "CloudRunJobsProvider",
    "CloudBatchProvider",
]
