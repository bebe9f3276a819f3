"""In-process execution of local workflow handlers."""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Union

from ..contracts import OutputMetadata, WorkflowInput, WorkflowOutput, utcnow
from ..exceptions import HandlerNotFoundError

logger = logging.getLogger(__name__)

HandlerResult = Union[WorkflowOutput, Mapping[str, Any]]
LocalHandler = Callable[[WorkflowInput], Awaitable[HandlerResult]]


class LocalExecutor:
    """Runs registered handler coroutines against a ``WorkflowInput``.

    Handlers may return a full ``WorkflowOutput`` or a mapping with
    ``success``/``data``/``error`` keys. Exceptions raised by a handler are
    not caught here.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, LocalHandler] = {}

    def register(self, name: str, handler: LocalHandler) -> None:
        self._handlers[name] = handler

    def registered_handlers(self) -> List[str]:
        return list(self._handlers)

    async def run(
        self, handler_name: str, workflow_input: WorkflowInput, workflow_id: str
    ) -> WorkflowOutput:
        handler = self._handlers.get(handler_name)
        if handler is None:
            raise HandlerNotFoundError(handler_name)

        start = time.perf_counter()
        result = await handler(workflow_input)
        duration_ms = int((time.perf_counter() - start) * 1000)

        output = _coerce_output(result, workflow_id)
        output.metadata.executed_at = utcnow()
        output.metadata.duration_ms = duration_ms
        logger.debug(
            f"Handler {handler_name} finished in {duration_ms}ms "
            f"for trace_id={workflow_input.context.trace_id}"
        )
        return output


def _coerce_output(result: HandlerResult, workflow_id: str) -> WorkflowOutput:
    if isinstance(result, WorkflowOutput):
        return result.model_copy(deep=True)
    fields = {k: result[k] for k in ("success", "data", "error") if k in result}
    metadata = dict(result.get("metadata") or {})
    metadata.setdefault("workflowId", workflow_id)
    return WorkflowOutput.model_validate({**fields, "metadata": metadata})
