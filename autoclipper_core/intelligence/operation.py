import threading
import time
import uuid
from typing import Dict, List, Optional

from loguru import logger

from autoclipper_core.errors import AnalysisCancelled


class AnalysisOperation:
    """
    Cancellation handle for one analysis run.

    The caller creates it (or receives it from the curator), keeps it, and may
    call ``cancel`` from any thread. The pipeline checks it at chunk
    boundaries, between streamed tokens and before emitting the final result.
    """

    def __init__(self, operation_id: Optional[str] = None):
        self.id = operation_id or uuid.uuid4().hex
        self.started_at = time.monotonic()
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        if not self._cancelled.is_set():
            logger.info(f"Cancellation requested for operation {self.id}")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise AnalysisCancelled(self.id)

    def wait(self, seconds: float) -> bool:
        """Sleeps up to ``seconds``; returns True early if cancelled meanwhile."""
        return self._cancelled.wait(seconds)


class OperationRegistry:
    """Thread-safe map of in-flight operations, used by the HTTP cancel endpoint."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._operations: Dict[str, AnalysisOperation] = {}

    def start(self) -> AnalysisOperation:
        operation = AnalysisOperation()
        with self._lock:
            self._operations[operation.id] = operation
        return operation

    def finish(self, operation: AnalysisOperation) -> None:
        with self._lock:
            self._operations.pop(operation.id, None)

    def get(self, operation_id: str) -> Optional[AnalysisOperation]:
        with self._lock:
            return self._operations.get(operation_id)

    def active(self) -> List[AnalysisOperation]:
        with self._lock:
            return list(self._operations.values())

    def cancel(self, operation_id: Optional[str] = None) -> List[str]:
        """Cancels one operation by id, or all of them when no id is given."""
        with self._lock:
            if operation_id is None:
                targets = list(self._operations.values())
            else:
                found = self._operations.get(operation_id)
                targets = [found] if found else []
        for operation in targets:
            operation.cancel()
        return [operation.id for operation in targets]
