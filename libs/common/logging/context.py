"""Run ID generation and context propagation for backtest log correlation.

Every backtest run is tagged with a run ID so that log records emitted while
several independent runs execute concurrently (e.g. a strategy comparison on
a thread pool) can be grouped per run.

Run IDs are stored in a ``contextvars.ContextVar``; each worker thread starts
with its own empty context, so concurrent runs never see each other's IDs.

Example:
    >>> from libs.common.logging.context import RunContext, get_run_id
    >>> with RunContext("rsi-majority") as run_id:
    ...     get_run_id() == run_id
    True
"""

import contextvars
import uuid
from types import TracebackType

_run_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("run_id", default=None)


def generate_run_id() -> str:
    """Generate a new unique run ID.

    Returns:
        A short hex identifier (first 12 chars of a UUID4)

    Example:
        >>> len(generate_run_id())
        12
    """
    return uuid.uuid4().hex[:12]


def get_run_id() -> str | None:
    """Get the current run ID from context, or None if unset."""
    return _run_id_var.get()


def set_run_id(run_id: str) -> None:
    """Set the run ID for the current context.

    Args:
        run_id: The run ID to set

    Raises:
        ValueError: If run_id is empty or None
    """
    if not run_id:
        raise ValueError("Run ID cannot be empty")
    _run_id_var.set(run_id)


def clear_run_id() -> None:
    """Clear the run ID from the current context."""
    _run_id_var.set(None)


class RunContext:
    """Context manager for scoped run ID management.

    Sets a run ID for a block of code and restores the previous value
    (or clears it) on exit, even if the block raises.

    Args:
        run_id: The run ID to set for this context. If None, generates a new ID.

    Example:
        >>> with RunContext() as run_id:
        ...     engine.run(bars)  # all engine logs carry run_id
    """

    def __init__(self, run_id: str | None = None) -> None:
        self.run_id = run_id or generate_run_id()
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> str:
        self._token = _run_id_var.set(self.run_id)
        return self.run_id

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _run_id_var.reset(self._token)
            self._token = None
