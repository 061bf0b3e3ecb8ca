"""Storage of the entities and metrics tracked by the exporter."""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from typing import TypeVar

from gcpexporter.metrics import Metric
from gcpexporter.models import Environment, Project, Ref, TaskType

_T = TypeVar("_T")


class Store(ABC):
    """Common interface of the stores."""

    @abstractmethod
    def set_project(self, project: Project) -> None: ...

    @abstractmethod
    def del_project(self, key: str) -> None: ...

    @abstractmethod
    def get_project(self, project: Project) -> Project: ...

    @abstractmethod
    def project_exists(self, key: str) -> bool: ...

    @abstractmethod
    def projects(self) -> dict[str, Project]: ...

    @abstractmethod
    def projects_count(self) -> int: ...

    @abstractmethod
    def set_environment(self, environment: Environment) -> None: ...

    @abstractmethod
    def del_environment(self, key: str) -> None: ...

    @abstractmethod
    def get_environment(self, environment: Environment) -> Environment: ...

    @abstractmethod
    def environment_exists(self, key: str) -> bool: ...

    @abstractmethod
    def environments(self) -> dict[str, Environment]: ...

    @abstractmethod
    def environments_count(self) -> int: ...

    @abstractmethod
    def set_ref(self, ref: Ref) -> None: ...

    @abstractmethod
    def del_ref(self, key: str) -> None: ...

    @abstractmethod
    def get_ref(self, ref: Ref) -> Ref: ...

    @abstractmethod
    def ref_exists(self, key: str) -> bool: ...

    @abstractmethod
    def refs(self) -> dict[str, Ref]: ...

    @abstractmethod
    def refs_count(self) -> int: ...

    @abstractmethod
    def set_metric(self, metric: Metric) -> None: ...

    @abstractmethod
    def del_metric(self, key: str) -> None: ...

    @abstractmethod
    def get_metric(self, metric: Metric) -> Metric: ...

    @abstractmethod
    def metric_exists(self, key: str) -> bool: ...

    @abstractmethod
    def metrics(self) -> dict[str, Metric]: ...

    @abstractmethod
    def metrics_count(self) -> int: ...

    @abstractmethod
    def queue_task(self, task_type: TaskType | str, task_id: str, process_id: str) -> bool:
        """Mark a task as queued; False if it already was."""

    @abstractmethod
    def unqueue_task(self, task_type: TaskType | str, task_id: str) -> None:
        """Mark a queued task as executed."""

    @abstractmethod
    def currently_queued_tasks_count(self) -> int: ...

    @abstractmethod
    def executed_tasks_count(self) -> int: ...


class _Collection:
    """A lock-guarded mapping of keys to copies of entities."""

    def __init__(self) -> None:
        self._items: dict[str, object] = {}
        self._lock = threading.RLock()

    def set(self, key: str, item: object) -> None:
        with self._lock:
            self._items[key] = copy.deepcopy(item)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def get(self, key: str, default: _T) -> _T:
        with self._lock:
            if key in self._items:
                return copy.deepcopy(self._items[key])  # type: ignore[return-value]
        return default

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._items

    def snapshot(self) -> dict:
        with self._lock:
            return copy.deepcopy(self._items)

    def count(self) -> int:
        with self._lock:
            return len(self._items)


class LocalStore(Store):
    """Store keeping everything in the memory of the current process."""

    def __init__(self) -> None:
        self._projects = _Collection()
        self._environments = _Collection()
        self._refs = _Collection()
        self._metrics = _Collection()
        self._tasks: dict[str, set[str]] = {}
        self._tasks_lock = threading.Lock()
        self._executed_tasks_count = 0

    # Projects

    def set_project(self, project: Project) -> None:
        self._projects.set(project.key(), project)

    def del_project(self, key: str) -> None:
        self._projects.delete(key)

    def get_project(self, project: Project) -> Project:
        """Return the stored project with the same key, or ``project`` itself."""
        return self._projects.get(project.key(), project)

    def project_exists(self, key: str) -> bool:
        return self._projects.exists(key)

    def projects(self) -> dict[str, Project]:
        return self._projects.snapshot()

    def projects_count(self) -> int:
        return self._projects.count()

    # Environments

    def set_environment(self, environment: Environment) -> None:
        self._environments.set(environment.key(), environment)

    def del_environment(self, key: str) -> None:
        self._environments.delete(key)

    def get_environment(self, environment: Environment) -> Environment:
        """Return the stored environment with the same key, or ``environment`` itself."""
        return self._environments.get(environment.key(), environment)

    def environment_exists(self, key: str) -> bool:
        return self._environments.exists(key)

    def environments(self) -> dict[str, Environment]:
        return self._environments.snapshot()

    def environments_count(self) -> int:
        return self._environments.count()

    # Refs

    def set_ref(self, ref: Ref) -> None:
        self._refs.set(ref.key(), ref)

    def del_ref(self, key: str) -> None:
        self._refs.delete(key)

    def get_ref(self, ref: Ref) -> Ref:
        """Return the stored ref with the same key, or ``ref`` itself."""
        return self._refs.get(ref.key(), ref)

    def ref_exists(self, key: str) -> bool:
        return self._refs.exists(key)

    def refs(self) -> dict[str, Ref]:
        return self._refs.snapshot()

    def refs_count(self) -> int:
        return self._refs.count()

    # Metrics

    def set_metric(self, metric: Metric) -> None:
        self._metrics.set(metric.key(), metric)

    def del_metric(self, key: str) -> None:
        self._metrics.delete(key)

    def get_metric(self, metric: Metric) -> Metric:
        """Return the stored metric with the same key, or ``metric`` itself."""
        return self._metrics.get(metric.key(), metric)

    def metric_exists(self, key: str) -> bool:
        return self._metrics.exists(key)

    def metrics(self) -> dict[str, Metric]:
        return self._metrics.snapshot()

    def metrics_count(self) -> int:
        return self._metrics.count()

    # Tasks

    def queue_task(self, task_type: TaskType | str, task_id: str, process_id: str = "") -> bool:
        with self._tasks_lock:
            queued = self._tasks.setdefault(task_type, set())
            if task_id in queued:
                return False
            queued.add(task_id)
            return True

    def unqueue_task(self, task_type: TaskType | str, task_id: str) -> None:
        with self._tasks_lock:
            queued = self._tasks.setdefault(task_type, set())
            if task_id in queued:
                queued.discard(task_id)
                self._executed_tasks_count += 1

    def currently_queued_tasks_count(self) -> int:
        with self._tasks_lock:
            return sum(len(ids) for ids in self._tasks.values())

    def executed_tasks_count(self) -> int:
        with self._tasks_lock:
            return self._executed_tasks_count