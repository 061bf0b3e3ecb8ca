"""Metric samples and their identity keys."""

from __future__ import annotations

import zlib
from dataclasses import dataclass, field
from enum import IntEnum


class MetricKind(IntEnum):
    COVERAGE = 0
    DURATION_SECONDS = 1
    ENVIRONMENT_BEHIND_COMMITS_COUNT = 2
    ENVIRONMENT_BEHIND_DURATION_SECONDS = 3
    ENVIRONMENT_DEPLOYMENT_COUNT = 4
    ENVIRONMENT_DEPLOYMENT_DURATION_SECONDS = 5
    ENVIRONMENT_DEPLOYMENT_JOB_ID = 6
    ENVIRONMENT_DEPLOYMENT_STATUS = 7
    ENVIRONMENT_DEPLOYMENT_TIMESTAMP = 8
    ENVIRONMENT_INFORMATION = 9
    ID = 10
    JOB_ARTIFACT_SIZE_BYTES = 11
    JOB_DURATION_SECONDS = 12
    JOB_ID = 13
    JOB_QUEUED_DURATION_SECONDS = 14
    JOB_RUN_COUNT = 15
    JOB_STATUS = 16
    JOB_TIMESTAMP = 17
    QUEUED_DURATION_SECONDS = 18
    RUN_COUNT = 19
    STATUS = 20
    TIMESTAMP = 21
    TEST_REPORT_TOTAL_TIME = 22
    TEST_REPORT_TOTAL_COUNT = 23
    TEST_REPORT_SUCCESS_COUNT = 24
    TEST_REPORT_FAILED_COUNT = 25
    TEST_REPORT_SKIPPED_COUNT = 26
    TEST_REPORT_ERROR_COUNT = 27
    TEST_SUITE_TOTAL_TIME = 28
    TEST_SUITE_TOTAL_COUNT = 29
    TEST_SUITE_SUCCESS_COUNT = 30
    TEST_SUITE_FAILED_COUNT = 31
    TEST_SUITE_SKIPPED_COUNT = 32
    TEST_SUITE_ERROR_COUNT = 33
    TEST_CASE_EXECUTION_TIME = 34
    TEST_CASE_STATUS = 35


K = MetricKind

_REF_LABELS = ("project", "kind", "ref", "source")
_JOB_LABELS = ("project", "kind", "ref", "stage", "tag_list", "job_name", "failure_reason")
_ENV_LABELS = ("project", "environment")
_SUITE_LABELS = ("project", "kind", "ref", "test_suite_name")
_CASE_LABELS = (
    "project",
    "kind",
    "ref",
    "test_suite_name",
    "test_case_name",
    "test_case_classname",
)

_KEY_LABELS: dict[MetricKind, tuple[str, ...]] = {}
for _kinds, _labels in (
    (
        (
            K.COVERAGE,
            K.DURATION_SECONDS,
            K.ID,
            K.QUEUED_DURATION_SECONDS,
            K.RUN_COUNT,
            K.STATUS,
            K.TIMESTAMP,
            K.TEST_REPORT_TOTAL_COUNT,
            K.TEST_REPORT_ERROR_COUNT,
            K.TEST_REPORT_FAILED_COUNT,
            K.TEST_REPORT_SKIPPED_COUNT,
            K.TEST_REPORT_SUCCESS_COUNT,
            K.TEST_REPORT_TOTAL_TIME,
        ),
        _REF_LABELS,
    ),
    (
        (
            K.JOB_ARTIFACT_SIZE_BYTES,
            K.JOB_DURATION_SECONDS,
            K.JOB_ID,
            K.JOB_QUEUED_DURATION_SECONDS,
            K.JOB_RUN_COUNT,
            K.JOB_STATUS,
            K.JOB_TIMESTAMP,
        ),
        _JOB_LABELS,
    ),
    (
        (
            K.ENVIRONMENT_BEHIND_COMMITS_COUNT,
            K.ENVIRONMENT_BEHIND_DURATION_SECONDS,
            K.ENVIRONMENT_DEPLOYMENT_COUNT,
            K.ENVIRONMENT_DEPLOYMENT_DURATION_SECONDS,
            K.ENVIRONMENT_DEPLOYMENT_JOB_ID,
            K.ENVIRONMENT_DEPLOYMENT_STATUS,
            K.ENVIRONMENT_DEPLOYMENT_TIMESTAMP,
            K.ENVIRONMENT_INFORMATION,
        ),
        _ENV_LABELS,
    ),
    (
        (
            K.TEST_SUITE_ERROR_COUNT,
            K.TEST_SUITE_FAILED_COUNT,
            K.TEST_SUITE_SKIPPED_COUNT,
            K.TEST_SUITE_SUCCESS_COUNT,
            K.TEST_SUITE_TOTAL_COUNT,
            K.TEST_SUITE_TOTAL_TIME,
        ),
        _SUITE_LABELS,
    ),
    ((K.TEST_CASE_EXECUTION_TIME, K.TEST_CASE_STATUS), _CASE_LABELS),
):
    for _kind in _kinds:
        _KEY_LABELS[_kind] = _labels

_STATUS_KINDS = frozenset(
    {K.JOB_STATUS, K.ENVIRONMENT_DEPLOYMENT_STATUS, K.STATUS, K.TEST_CASE_STATUS}
)


@dataclass
class Metric:
    """A single metric sample with its labels."""

    kind: MetricKind
    labels: dict[str, str] = field(default_factory=dict)
    value: float = 0.0

    def key(self) -> str:
        """Identity of the sample, derived from its kind and identifying labels."""
        kind = MetricKind(self.kind)
        key = str(int(kind))
        names = _KEY_LABELS.get(kind)
        if names is not None:
            key += "[" + " ".join(self.labels.get(name, "") for name in names) + "]"
        if kind in _STATUS_KINDS:
            key += self.labels.get("status", "")
        return str(zlib.crc32(key.encode("utf-8")))