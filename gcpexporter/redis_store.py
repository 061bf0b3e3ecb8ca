"""Store backed by a Redis server, shared between exporter processes."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, TypeVar

import msgpack
import redis

from gcpexporter.metrics import Metric, MetricKind
from gcpexporter.models import (
    Deployment,
    Environment,
    Job,
    Pipeline,
    Project,
    Ref,
    RefKind,
    Runner,
    TaskType,
    TestCase,
    TestReport,
    TestSuite,
)
from gcpexporter.store import LocalStore, Store

logger = logging.getLogger(__name__)

PROJECTS_KEY = "projects"
ENVIRONMENTS_KEY = "environments"
REFS_KEY = "refs"
METRICS_KEY = "metrics"
TASK_KEY = "task"
TASKS_EXECUTED_COUNT_KEY = "tasksExecutedCount"
KEEPALIVE_KEY = "keepalive"

_T = TypeVar("_T")


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _plain(value: Any) -> Any:
    """Turn enums and nested containers into types msgpack packs as-is."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {_plain(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _pack(entity: Any) -> bytes:
    return msgpack.packb(_plain(asdict(entity)), use_bin_type=True)


def _unpack(raw: bytes | str) -> dict[str, Any]:
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    return msgpack.unpackb(raw, raw=False)


def _ref_kind(value: Any) -> RefKind | str:
    try:
        return RefKind(value)
    except ValueError:
        return value or ""


def _decode_project(d: Mapping[str, Any]) -> Project:
    return Project(name=d.get("name", ""), topics=d.get("topics", ""))


def _decode_deployment(d: Mapping[str, Any]) -> Deployment:
    return Deployment(
        job_id=d.get("job_id", 0),
        ref_kind=_ref_kind(d.get("ref_kind", "")),
        ref_name=d.get("ref_name", ""),
        username=d.get("username", ""),
        timestamp=float(d.get("timestamp", 0.0)),
        duration_seconds=float(d.get("duration_seconds", 0.0)),
        commit_short_id=d.get("commit_short_id", ""),
        status=d.get("status", ""),
    )


def _decode_environment(d: Mapping[str, Any]) -> Environment:
    return Environment(
        project_name=d.get("project_name", ""),
        id=d.get("id", 0),
        name=d.get("name", ""),
        external_url=d.get("external_url", ""),
        available=bool(d.get("available", False)),
        latest_deployment=_decode_deployment(d.get("latest_deployment") or {}),
        output_sparse_status_metrics=bool(d.get("output_sparse_status_metrics", False)),
    )


def _decode_job(d: Mapping[str, Any]) -> Job:
    runner = d.get("runner") or {}
    return Job(
        id=d.get("id", 0),
        name=d.get("name", ""),
        stage=d.get("stage", ""),
        timestamp=float(d.get("timestamp", 0.0)),
        duration_seconds=float(d.get("duration_seconds", 0.0)),
        queued_duration_seconds=float(d.get("queued_duration_seconds", 0.0)),
        status=d.get("status", ""),
        tag_list=d.get("tag_list", ""),
        artifact_size=float(d.get("artifact_size", 0.0)),
        failure_reason=d.get("failure_reason", ""),
        runner=Runner(description=runner.get("description", "")),
    )


def _decode_test_case(d: Mapping[str, Any]) -> TestCase:
    return TestCase(
        name=d.get("name", ""),
        classname=d.get("classname", ""),
        execution_time=float(d.get("execution_time", 0.0)),
        status=d.get("status", ""),
    )


def _decode_test_suite(d: Mapping[str, Any]) -> TestSuite:
    return TestSuite(
        name=d.get("name", ""),
        total_time=float(d.get("total_time", 0.0)),
        total_count=d.get("total_count", 0),
        success_count=d.get("success_count", 0),
        failed_count=d.get("failed_count", 0),
        skipped_count=d.get("skipped_count", 0),
        error_count=d.get("error_count", 0),
        test_cases=[_decode_test_case(tc) for tc in d.get("test_cases") or ()],
    )


def _decode_test_report(d: Mapping[str, Any]) -> TestReport:
    return TestReport(
        total_time=float(d.get("total_time", 0.0)),
        total_count=d.get("total_count", 0),
        success_count=d.get("success_count", 0),
        failed_count=d.get("failed_count", 0),
        skipped_count=d.get("skipped_count", 0),
        error_count=d.get("error_count", 0),
        test_suites=[_decode_test_suite(ts) for ts in d.get("test_suites") or ()],
    )


def _decode_pipeline(d: Mapping[str, Any]) -> Pipeline:
    return Pipeline(
        id=d.get("id", 0),
        coverage=float(d.get("coverage", 0.0)),
        timestamp=float(d.get("timestamp", 0.0)),
        duration_seconds=float(d.get("duration_seconds", 0.0)),
        queued_duration_seconds=float(d.get("queued_duration_seconds", 0.0)),
        source=d.get("source", ""),
        status=d.get("status", ""),
        variables=d.get("variables", ""),
        test_report=_decode_test_report(d.get("test_report") or {}),
    )


def _decode_ref(d: Mapping[str, Any]) -> Ref:
    return Ref(
        kind=_ref_kind(d.get("kind", "")),
        name=d.get("name", ""),
        project=_decode_project(d.get("project") or {}),
        latest_pipeline=_decode_pipeline(d.get("latest_pipeline") or {}),
        latest_jobs={k: _decode_job(v) for k, v in (d.get("latest_jobs") or {}).items()},
    )


def _decode_metric(d: Mapping[str, Any]) -> Metric:
    return Metric(
        kind=MetricKind(d.get("kind", 0)),
        labels=dict(d.get("labels") or {}),
        value=float(d.get("value", 0.0)),
    )


def _task_type_value(task_type: TaskType | str) -> str:
    return task_type.value if isinstance(task_type, TaskType) else str(task_type)


def redis_queue_key(task_type: TaskType | str, task_id: str) -> str:
    """Redis key marking a task of the given type and id as queued."""
    return f"{TASK_KEY}:{_task_type_value(task_type)}:{task_id}"


def _ttl_milliseconds(ttl: float | timedelta) -> int:
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    return int(round(seconds * 1000))


class RedisStore(Store):
    """Store keeping its entities in Redis hashes, encoded with msgpack.

    The client must return raw bytes (``decode_responses`` left off).
    """

    def __init__(self, client: Any) -> None:
        self.client = client

    # Generic hash helpers

    def _set(self, hash_key: str, key: str, entity: Any) -> None:
        self.client.hset(hash_key, key, _pack(entity))

    def _delete(self, hash_key: str, key: str) -> None:
        self.client.hdel(hash_key, key)

    def _exists(self, hash_key: str, key: str) -> bool:
        return bool(self.client.hexists(hash_key, key))

    def _get(
        self, hash_key: str, entity: _T, key: str, decode: Callable[[Mapping[str, Any]], _T]
    ) -> _T:
        if not self._exists(hash_key, key):
            return entity
        raw = self.client.hget(hash_key, key)
        if raw is None:
            return entity
        return decode(_unpack(raw))

    def _all(self, hash_key: str, decode: Callable[[Mapping[str, Any]], _T]) -> dict[str, _T]:
        return {
            _text(key): decode(_unpack(raw))
            for key, raw in self.client.hgetall(hash_key).items()
        }

    def _count(self, hash_key: str) -> int:
        return int(self.client.hlen(hash_key))

    # Projects

    def set_project(self, project: Project) -> None:
        self._set(PROJECTS_KEY, project.key(), project)

    def del_project(self, key: str) -> None:
        self._delete(PROJECTS_KEY, key)

    def get_project(self, project: Project) -> Project:
        """Return the stored project with the same key, or ``project`` itself."""
        return self._get(PROJECTS_KEY, project, project.key(), _decode_project)

    def project_exists(self, key: str) -> bool:
        return self._exists(PROJECTS_KEY, key)

    def projects(self) -> dict[str, Project]:
        return self._all(PROJECTS_KEY, _decode_project)

    def projects_count(self) -> int:
        return self._count(PROJECTS_KEY)

    # Environments

    def set_environment(self, environment: Environment) -> None:
        self._set(ENVIRONMENTS_KEY, environment.key(), environment)

    def del_environment(self, key: str) -> None:
        self._delete(ENVIRONMENTS_KEY, key)

    def get_environment(self, environment: Environment) -> Environment:
        """Return the stored environment with the same key, or ``environment`` itself."""
        return self._get(ENVIRONMENTS_KEY, environment, environment.key(), _decode_environment)

    def environment_exists(self, key: str) -> bool:
        return self._exists(ENVIRONMENTS_KEY, key)

    def environments(self) -> dict[str, Environment]:
        return self._all(ENVIRONMENTS_KEY, _decode_environment)

    def environments_count(self) -> int:
        return self._count(ENVIRONMENTS_KEY)

    # Refs

    def set_ref(self, ref: Ref) -> None:
        self._set(REFS_KEY, ref.key(), ref)

    def del_ref(self, key: str) -> None:
        self._delete(REFS_KEY, key)

    def get_ref(self, ref: Ref) -> Ref:
        """Return the stored ref with the same key, or ``ref`` itself."""
        return self._get(REFS_KEY, ref, ref.key(), _decode_ref)

    def ref_exists(self, key: str) -> bool:
        return self._exists(REFS_KEY, key)

    def refs(self) -> dict[str, Ref]:
        return self._all(REFS_KEY, _decode_ref)

    def refs_count(self) -> int:
        return self._count(REFS_KEY)

    # Metrics

    def set_metric(self, metric: Metric) -> None:
        self._set(METRICS_KEY, metric.key(), metric)

    def del_metric(self, key: str) -> None:
        self._delete(METRICS_KEY, key)

    def get_metric(self, metric: Metric) -> Metric:
        """Return the stored metric with the same key, or ``metric`` itself."""
        return self._get(METRICS_KEY, metric, metric.key(), _decode_metric)

    def metric_exists(self, key: str) -> bool:
        return self._exists(METRICS_KEY, key)

    def metrics(self) -> dict[str, Metric]:
        return self._all(METRICS_KEY, _decode_metric)

    def metrics_count(self) -> int:
        return self._count(METRICS_KEY)

    # Keepalive

    def set_keepalive(self, uuid: str, ttl: float | timedelta) -> bool:
        """Record that the process ``uuid`` is alive for ``ttl`` seconds."""
        ms = _ttl_milliseconds(ttl)
        result = self.client.set(
            f"{KEEPALIVE_KEY}:{uuid}", "", nx=True, px=ms if ms > 0 else None
        )
        return bool(result)

    def keepalive_exists(self, uuid: str) -> bool:
        return int(self.client.exists(f"{KEEPALIVE_KEY}:{uuid}")) == 1

    # Tasks

    def queue_task(self, task_type: TaskType | str, task_id: str, process_id: str = "") -> bool:
        """Mark a task as queued by ``process_id``.

        A task held by another process is taken over only when that process
        no longer has a keepalive.
        """
        key = redis_queue_key(task_type, task_id)
        if self.client.set(key, process_id, nx=True):
            return True

        owner_raw = self.client.get(key)
        if owner_raw is None:
            raise redis.exceptions.DataError(f"task key {key} vanished while queueing")
        owner = _text(owner_raw)

        if owner != process_id and not self.keepalive_exists(owner):
            self.client.set(key, process_id)
            return True
        return False

    def unqueue_task(self, task_type: TaskType | str, task_id: str) -> None:
        if int(self.client.delete(redis_queue_key(task_type, task_id))) > 0:
            self.client.incr(TASKS_EXECUTED_COUNT_KEY)

    def currently_queued_tasks_count(self) -> int:
        return sum(1 for _ in self.client.scan_iter(match=f"{TASK_KEY}:*"))

    def executed_tasks_count(self) -> int:
        value = self.client.get(TASKS_EXECUTED_COUNT_KEY)
        if value is None:
            return 0
        return int(_text(value))


def new_store(redis_client: Any, projects: Iterable[Project | str] = ()) -> Store:
    """Create a store (Redis-backed if a client is given) holding ``projects``."""
    store: Store = RedisStore(redis_client) if redis_client is not None else LocalStore()

    for entry in projects:
        project = Project(name=entry) if isinstance(entry, str) else entry
        try:
            exists = store.project_exists(project.key())
        except redis.exceptions.RedisError as exc:
            logger.error("reading project %s from the store: %s", project.name, exc)
            exists = False

        if not exists:
            try:
                store.set_project(project)
            except redis.exceptions.RedisError as exc:
                logger.error("writing project %s in the store: %s", project.name, exc)

    return store