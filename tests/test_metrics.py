from gcpexporter.metrics import Metric, MetricKind


def test_metric_key_pinned_values():
    assert Metric(kind=MetricKind.COVERAGE, labels={"foo": "bar"}).key() == "3797596385"
    assert (
        Metric(
            kind=MetricKind.ENVIRONMENT_INFORMATION,
            labels={"project": "foo", "environment": "bar", "foo": "bar"},
        ).key()
        == "77312310"
    )
    assert Metric(kind=MetricKind.ENVIRONMENT_INFORMATION).key() == "1288741005"


def test_unrelated_labels_do_not_change_key():
    base = Metric(kind=MetricKind.ENVIRONMENT_INFORMATION, labels={"project": "foo", "environment": "bar"})
    extra = Metric(
        kind=MetricKind.ENVIRONMENT_INFORMATION,
        labels={"project": "foo", "environment": "bar", "foo": "bar"},
    )
    assert base.key() == extra.key() == "77312310"


def test_value_does_not_change_key():
    a = Metric(kind=MetricKind.RUN_COUNT, labels={"project": "p"}, value=1)
    b = Metric(kind=MetricKind.RUN_COUNT, labels={"project": "p"}, value=42)
    assert a.key() == b.key()


def test_status_label_distinguishes_status_kinds():
    running = Metric(kind=MetricKind.STATUS, labels={"project": "p", "status": "running"})
    failed = Metric(kind=MetricKind.STATUS, labels={"project": "p", "status": "failed"})
    assert running.key() != failed.key()


def test_status_label_ignored_for_other_kinds():
    a = Metric(kind=MetricKind.COVERAGE, labels={"project": "p", "status": "running"})
    b = Metric(kind=MetricKind.COVERAGE, labels={"project": "p", "status": "failed"})
    assert a.key() == b.key()


def test_kind_is_part_of_key():
    labels = {"project": "p", "kind": "branch", "ref": "main"}
    assert Metric(kind=MetricKind.COVERAGE, labels=labels).key() != Metric(
        kind=MetricKind.DURATION_SECONDS, labels=labels
    ).key()


def test_job_name_is_part_of_job_key():
    a = Metric(kind=MetricKind.JOB_ID, labels={"project": "p", "job_name": "build"})
    b = Metric(kind=MetricKind.JOB_ID, labels={"project": "p", "job_name": "test"})
    assert a.key() != b.key()


def test_kind_numbering_follows_declaration_order():
    assert Metric(kind=MetricKind(0), labels={"foo": "bar"}).key() == "3797596385"
    assert Metric(kind=MetricKind(9)).key() == "1288741005"
    status_running = Metric(kind=MetricKind(35), labels={"project": "p", "status": "running"})
    status_failed = Metric(kind=MetricKind(35), labels={"project": "p", "status": "failed"})
    assert status_running.key() != status_failed.key()
    assert MetricKind(35) is MetricKind.TEST_CASE_STATUS