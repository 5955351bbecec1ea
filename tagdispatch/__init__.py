"""
Tag-Aware Job Dispatcher

A shared FIFO job queue whose workers guarantee that no two jobs sharing
a resource tag execute at the same time, with bounded per-worker
concurrency and graceful draining on shutdown.
"""

__version__ = "1.0.0"
