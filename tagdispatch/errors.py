"""
Error taxonomy for the dispatcher.

Validation and lookup errors are surfaced to callers, execution errors
are contained by the worker, store errors propagate unretried.
"""


class TagDispatchError(Exception):
    """Base class for all dispatcher errors."""


class JobValidationError(TagDispatchError, ValueError):
    """Malformed input, e.g. enqueueing something that is not a pending Job."""


class JobNotFoundError(TagDispatchError, LookupError):
    """A job id that the store has no record of."""


class InvalidTransitionError(TagDispatchError):
    """A status change that the job lifecycle does not allow."""


class StoreError(TagDispatchError):
    """Connectivity or serialization failure against the shared store."""


class StoreConflictError(StoreError):
    """A write lost against a concurrent writer (unique constraint violated)."""


class PoolSaturatedError(TagDispatchError):
    """The execution pool has no free slot or queue capacity left."""


class PoolClosedError(TagDispatchError):
    """Work was submitted to an execution pool that is shutting down."""
