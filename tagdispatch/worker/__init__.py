"""
Worker module.
Polls the job store, admits jobs and executes them on a bounded pool.
"""

from tagdispatch.worker.control import WorkerControl
from tagdispatch.worker.handlers import execute_job, register_handler
from tagdispatch.worker.main import Worker
from tagdispatch.worker.pool import ExecutionPool

__all__ = ["Worker", "WorkerControl", "ExecutionPool", "execute_job", "register_handler"]
