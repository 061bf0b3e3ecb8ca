"""Entities discovered on GitLab and tracked by the exporter."""

from __future__ import annotations

import logging
import re
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)

_MERGE_REQUEST_REGEXP = r"^((\d+)|refs/merge-requests/(\d+)/head)$"
_MERGE_REQUEST_PATTERN = re.compile(_MERGE_REQUEST_REGEXP, re.ASCII)


class RefKind(str, Enum):
    """Kind of a git reference."""

    BRANCH = "branch"
    TAG = "tag"
    MERGE_REQUEST = "merge-request"


class TaskType(str, Enum):
    """Types of the tasks scheduled by the exporter."""

    PULL_PROJECT = "PullProject"
    PULL_PROJECTS_FROM_WILDCARD = "PullProjectsFromWildcard"
    PULL_PROJECTS_FROM_WILDCARDS = "PullProjectsFromWildcards"
    PULL_ENVIRONMENTS_FROM_PROJECT = "PullEnvironmentsFromProject"
    PULL_ENVIRONMENTS_FROM_PROJECTS = "PullEnvironmentsFromProjects"
    PULL_ENVIRONMENT_METRICS = "PullEnvironmentMetrics"
    PULL_METRICS = "PullMetrics"
    PULL_REFS_FROM_PROJECT = "PullRefsFromProject"
    PULL_REFS_FROM_PROJECTS = "PullRefsFromProjects"
    PULL_REF_METRICS = "PullRefMetrics"
    GARBAGE_COLLECT_PROJECTS = "GarbageCollectProjects"
    GARBAGE_COLLECT_ENVIRONMENTS = "GarbageCollectEnvironments"
    GARBAGE_COLLECT_REFS = "GarbageCollectRefs"
    GARBAGE_COLLECT_METRICS = "GarbageCollectMetrics"


def _checksum(text: str) -> str:
    return str(zlib.crc32(text.encode("utf-8")))


def _kind_value(kind: RefKind | str | None) -> str:
    if isinstance(kind, RefKind):
        return kind.value
    return kind or ""


def _timestamp(value: Any) -> float:
    """Unix seconds (truncated) of a datetime or ISO 8601 string; 0 when absent."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return float(int(value.timestamp()))


@dataclass
class TaskSchedulingStatus:
    """When a recurring task last ran and when it is due next."""

    last: datetime | None = None
    next: datetime | None = None


@dataclass
class Deployment:
    job_id: int = 0
    ref_kind: RefKind | str = ""
    ref_name: str = ""
    username: str = ""
    timestamp: float = 0.0
    duration_seconds: float = 0.0
    commit_short_id: str = ""
    status: str = ""


@dataclass
class Environment:
    project_name: str = ""
    id: int = 0
    name: str = ""
    external_url: str = ""
    available: bool = False
    latest_deployment: Deployment = field(default_factory=Deployment)
    output_sparse_status_metrics: bool = False

    def key(self) -> str:
        return _checksum(self.project_name + self.name)

    def default_labels_values(self) -> dict[str, str]:
        return {"project": self.project_name, "environment": self.name}

    def information_labels_values(self) -> dict[str, str]:
        values = self.default_labels_values()
        deployment = self.latest_deployment
        values.update(
            {
                "environment_id": str(self.id),
                "external_url": self.external_url,
                "kind": _kind_value(deployment.ref_kind),
                "ref": deployment.ref_name,
                "current_commit_short_id": deployment.commit_short_id,
                "latest_commit_short_id": "",
                "available": "true" if self.available else "false",
                "username": deployment.username,
            }
        )
        return values


@dataclass
class Runner:
    description: str = ""


@dataclass
class Job:
    id: int = 0
    name: str = ""
    stage: str = ""
    timestamp: float = 0.0
    duration_seconds: float = 0.0
    queued_duration_seconds: float = 0.0
    status: str = ""
    tag_list: str = ""
    artifact_size: float = 0.0
    failure_reason: str = ""
    runner: Runner = field(default_factory=Runner)


@dataclass
class TestCase:
    __test__ = False

    name: str = ""
    classname: str = ""
    execution_time: float = 0.0
    status: str = ""


@dataclass
class TestSuite:
    __test__ = False

    name: str = ""
    total_time: float = 0.0
    total_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    test_cases: list[TestCase] = field(default_factory=list)


@dataclass
class TestReport:
    __test__ = False

    total_time: float = 0.0
    total_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    test_suites: list[TestSuite] = field(default_factory=list)


@dataclass
class Pipeline:
    id: int = 0
    coverage: float = 0.0
    timestamp: float = 0.0
    duration_seconds: float = 0.0
    queued_duration_seconds: float = 0.0
    source: str = ""
    status: str = ""
    variables: str = ""
    test_report: TestReport = field(default_factory=TestReport)


@dataclass
class Project:
    name: str = ""
    topics: str = ""

    def key(self) -> str:
        return _checksum(self.name)


@dataclass
class Ref:
    kind: RefKind | str = ""
    name: str = ""
    project: Project = field(default_factory=Project)
    latest_pipeline: Pipeline = field(default_factory=Pipeline)
    latest_jobs: dict[str, Job] = field(default_factory=dict)

    def key(self) -> str:
        return _checksum(_kind_value(self.kind) + self.project.name + self.name)

    def default_labels_values(self) -> dict[str, str]:
        return {
            "kind": _kind_value(self.kind),
            "project": self.project.name,
            "ref": self.name,
            "topics": self.project.topics,
            "variables": self.latest_pipeline.variables,
            "source": self.latest_pipeline.source,
        }


def new_job(data: Mapping[str, Any]) -> Job:
    """Build a Job from a GitLab API job document."""
    artifact_size = float(sum((a.get("size") or 0) for a in data.get("artifacts") or ()))
    runner = data.get("runner") or {}
    return Job(
        id=data.get("id") or 0,
        name=data.get("name") or "",
        stage=data.get("stage") or "",
        timestamp=_timestamp(data.get("created_at")),
        duration_seconds=float(data.get("duration") or 0),
        queued_duration_seconds=float(data.get("queued_duration") or 0),
        status=data.get("status") or "",
        tag_list=",".join(data.get("tag_list") or ()),
        artifact_size=artifact_size,
        failure_reason=data.get("failure_reason") or "",
        runner=Runner(description=runner.get("description") or ""),
    )


def new_pipeline(data: Mapping[str, Any]) -> Pipeline:
    """Build a Pipeline from a GitLab API pipeline document."""
    coverage = 0.0
    raw_coverage = data.get("coverage") or ""
    if raw_coverage != "":
        try:
            coverage = float(raw_coverage)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "could not parse coverage string returned from GitLab API '%s' into float: %s",
                raw_coverage,
                exc,
            )

    detailed_status = data.get("detailed_status")
    if detailed_status is not None:
        status = detailed_status.get("group") or ""
    else:
        status = data.get("status") or ""

    return Pipeline(
        id=data.get("id") or 0,
        coverage=coverage,
        timestamp=_timestamp(data.get("updated_at")),
        duration_seconds=float(data.get("duration") or 0),
        queued_duration_seconds=float(data.get("queued_duration") or 0),
        source=data.get("source") or "",
        status=status,
    )


def new_test_case(data: Mapping[str, Any]) -> TestCase:
    return TestCase(
        name=data.get("name") or "",
        classname=data.get("classname") or "",
        execution_time=float(data.get("execution_time") or 0),
        status=data.get("status") or "",
    )


def new_test_suite(data: Mapping[str, Any]) -> TestSuite:
    return TestSuite(
        name=data.get("name") or "",
        total_time=float(data.get("total_time") or 0),
        total_count=data.get("total_count") or 0,
        success_count=data.get("success_count") or 0,
        failed_count=data.get("failed_count") or 0,
        skipped_count=data.get("skipped_count") or 0,
        error_count=data.get("error_count") or 0,
        test_cases=[new_test_case(tc) for tc in data.get("test_cases") or ()],
    )


def new_test_report(data: Mapping[str, Any]) -> TestReport:
    return TestReport(
        total_time=float(data.get("total_time") or 0),
        total_count=data.get("total_count") or 0,
        success_count=data.get("success_count") or 0,
        failed_count=data.get("failed_count") or 0,
        skipped_count=data.get("skipped_count") or 0,
        error_count=data.get("error_count") or 0,
        test_suites=[new_test_suite(ts) for ts in data.get("test_suites") or ()],
    )


def new_project(name: str) -> Project:
    return Project(name=name)


def new_ref(project: Project, kind: RefKind | str, name: str) -> Ref:
    return Ref(kind=kind, name=name, project=project, latest_jobs={})


def get_ref_regexp(
    kind: RefKind | str, branches_regexp: str, tags_regexp: str
) -> re.Pattern[str]:
    """Return the pattern refs of the given kind must match."""
    value = _kind_value(kind)
    if value == RefKind.BRANCH.value:
        return re.compile(branches_regexp)
    if value == RefKind.TAG.value:
        return re.compile(tags_regexp)
    if value == RefKind.MERGE_REQUEST.value:
        return _MERGE_REQUEST_PATTERN
    raise ValueError(f"invalid ref kind ({value})")


def get_merge_request_iid_from_ref_name(ref_name: str) -> str:
    """Extract a merge request IID from a ref name, raising ValueError if absent."""
    match = _MERGE_REQUEST_PATTERN.match(ref_name)
    if match:
        for iid in (match.group(2), match.group(3)):
            if iid:
                return iid
    raise ValueError(f"unable to extract the merge-request ID from the ref ({ref_name})")