"""Exception hierarchy for tracewire.

- TracewireError (base)
  - WorkflowNotFoundError (don't retry)
  - HandlerNotFoundError (don't retry)
  - RemoteCallError (retry)
  - RecordNotFoundError
  - TraceAlreadyCompletedError
"""

from __future__ import annotations


class TracewireError(Exception):
    """Base exception for all tracewire errors."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class WorkflowNotFoundError(TracewireError):
    """Workflow id is not present in the registry."""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow '{workflow_id}' not found in registry")
        self.workflow_id = workflow_id


class HandlerNotFoundError(TracewireError):
    """Local handler name has not been registered with the executor."""

    def __init__(self, handler_name: str):
        super().__init__(f"Local handler '{handler_name}' is not registered")
        self.handler_name = handler_name


class RemoteCallError(TracewireError):
    """The remote workflow engine could not be reached or answered badly."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, retryable=True)
        self.status_code = status_code


class RecordNotFoundError(TracewireError):
    """A trace or execution row referenced by id does not exist."""


class TraceAlreadyCompletedError(TracewireError):
    """A trace row may only be completed once."""

    def __init__(self, trace_record_id: str):
        super().__init__(f"Trace record {trace_record_id} is already completed")
        self.trace_record_id = trace_record_id
