from __future__ import annotations

import logging
import threading
import uuid

from src.backend.fs.storage import TaskStorageManager

from .errors import CapacityExceeded, TaskCreationFailed
from .models import Task
from .registry import TaskRegistry

logger = logging.getLogger(__name__)


class AdmissionGate:
    """
    Bounded counting resource keyed by holder token.

    Each token holds at most one slot. Releasing a token that holds nothing
    (never acquired, or already released) is reported instead of silently
    inflating the free count.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._holders: set[str] = set()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        with self._lock:
            return len(self._holders)

    @property
    def available(self) -> int:
        with self._lock:
            return self._capacity - len(self._holders)

    def holds(self, token: str) -> bool:
        with self._lock:
            return token in self._holders

    def acquire(self, token: str) -> bool:
        with self._lock:
            if token in self._holders or len(self._holders) >= self._capacity:
                return False
            self._holders.add(token)
            return True

    def release(self, token: str) -> bool:
        with self._lock:
            if token not in self._holders:
                logger.warning("Admission slot for %s released twice or never acquired", token)
                return False
            self._holders.discard(token)
            return True


class AdmissionController:
    """
    Admits new tasks while fewer than ``max_active`` are alive.

    A slot is reserved at creation and returned by ``release`` once the task
    has been cleaned up.
    """

    def __init__(
        self,
        *,
        registry: TaskRegistry,
        storage: TaskStorageManager,
        max_active: int = 3,
    ) -> None:
        self._registry = registry
        self._storage = storage
        self._gate = AdmissionGate(max_active)

    @property
    def gate(self) -> AdmissionGate:
        return self._gate

    @property
    def max_active(self) -> int:
        return self._gate.capacity

    async def try_admit(self) -> Task:
        """
        Create a new task if capacity allows.

        Raises:
            CapacityExceeded: the ceiling is reached; nothing was created.
            TaskCreationFailed: the working directory could not be created;
                the reserved slot is returned and no task is registered.
        """
        async with self._registry.locked() as reg:
            if reg.count_locked() >= self._gate.capacity or self._gate.available <= 0:
                raise CapacityExceeded(self._gate.capacity)

            task_id = self._new_task_id(reg)
            if not self._gate.acquire(task_id):
                raise CapacityExceeded(self._gate.capacity)

            try:
                work_dir = self._storage.ensure_task_dir(task_id)
            except OSError as exc:
                self._gate.release(task_id)
                logger.error("Failed to create working directory for task %s: %s", task_id, exc)
                raise TaskCreationFailed() from exc

            task = Task(task_id=task_id, work_dir=work_dir)
            reg.put_locked(task)
            admitted = task.snapshot()

        logger.info("Admitted task %s (%d/%d active)", task_id, self._gate.in_use, self._gate.capacity)
        return admitted

    def release(self, task_id: str) -> bool:
        released = self._gate.release(task_id)
        if released:
            logger.info("Released admission slot of task %s", task_id)
        return released

    @staticmethod
    def _new_task_id(reg: TaskRegistry) -> str:
        while True:
            task_id = str(uuid.uuid4())
            if not reg.was_issued_locked(task_id):
                return task_id
