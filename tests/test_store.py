import pytest

from gcpexporter.metrics import Metric, MetricKind
from gcpexporter.models import (
    Environment,
    Ref,
    RefKind,
    TaskType,
    new_project,
    new_ref,
)
from gcpexporter.store import LocalStore, Store


def test_local_store_starts_empty():
    store = LocalStore()
    assert store.projects() == {}
    assert store.environments() == {}
    assert store.refs() == {}
    assert store.metrics() == {}
    assert store.currently_queued_tasks_count() == 0
    assert store.executed_tasks_count() == 0


def test_store_is_abstract():
    with pytest.raises(TypeError):
        Store()


def test_local_project_functions():
    p = new_project("foo/bar")
    p.topics = "salty"

    store = LocalStore()
    store.set_project(p)

    projects = store.projects()
    assert p.key() in projects
    assert projects[p.key()] == p

    assert store.project_exists(p.key()) is True

    assert store.get_project(new_project("foo/bar")) == p

    assert store.projects_count() == 1

    store.del_project(p.key())
    assert p.key() not in store.projects()
    assert store.project_exists(p.key()) is False

    lookup = new_project("foo/bar")
    result = store.get_project(lookup)
    assert result is lookup
    assert result != p


def test_local_project_is_stored_by_value():
    p = new_project("foo/bar")
    store = LocalStore()
    store.set_project(p)
    p.topics = "changed"
    assert store.get_project(new_project("foo/bar")).topics == ""


def test_local_environment_functions():
    environment = Environment(project_name="foo", id=1)

    store = LocalStore()
    store.set_environment(environment)

    environments = store.environments()
    assert environment.key() in environments
    assert environments[environment.key()] == environment

    assert store.environment_exists(environment.key()) is True

    assert store.get_environment(Environment(project_name="foo", id=1)) == environment

    assert store.environments_count() == 1

    store.del_environment(environment.key())
    assert environment.key() not in store.environments()
    assert store.environment_exists(environment.key()) is False

    lookup = Environment(project_name="foo", id=1, external_url="foo")
    result = store.get_environment(lookup)
    assert result == lookup
    assert result != environment


def test_local_ref_functions():
    p = new_project("foo/bar")
    p.topics = "salty"
    ref = new_ref(p, RefKind.BRANCH, "sweet")

    store = LocalStore()
    store.set_ref(ref)

    refs = store.refs()
    assert ref.key() in refs
    assert refs[ref.key()] == ref

    assert store.ref_exists(ref.key()) is True

    lookup = Ref(project=new_project("foo/bar"), kind=RefKind.BRANCH, name="sweet")
    assert store.get_ref(lookup) == ref

    assert store.refs_count() == 1

    store.del_ref(ref.key())
    assert ref.key() not in store.refs()
    assert store.ref_exists(ref.key()) is False

    lookup = Ref(kind=RefKind.BRANCH, project=new_project("foo/bar"), name="sweet")
    result = store.get_ref(lookup)
    assert result == lookup
    assert result != ref


def test_local_metric_functions():
    m = Metric(kind=MetricKind.COVERAGE, labels={"foo": "bar"}, value=5)

    store = LocalStore()
    store.set_metric(m)

    metrics = store.metrics()
    assert m.key() in metrics
    assert metrics[m.key()] == m

    assert store.metric_exists(m.key()) is True

    assert store.get_metric(Metric(kind=MetricKind.COVERAGE, labels={"foo": "bar"})) == m

    assert store.metrics_count() == 1

    store.del_metric(m.key())
    assert m.key() not in store.metrics()
    assert store.metric_exists(m.key()) is False

    lookup = Metric(kind=MetricKind.COVERAGE, labels={"foo": "bar"})
    result = store.get_metric(lookup)
    assert result.value == 0
    assert result != m


def test_local_queue_task():
    store = LocalStore()
    assert store.queue_task(TaskType.PULL_METRICS, "foo", "") is True
    assert store.queue_task(TaskType.PULL_METRICS, "foo", "") is False

    store.queue_task(TaskType.PULL_METRICS, "bar", "")
    assert store.queue_task(TaskType.PULL_METRICS, "bar", "") is False


def test_local_queue_task_distinguishes_types():
    store = LocalStore()
    assert store.queue_task(TaskType.PULL_METRICS, "foo", "") is True
    assert store.queue_task(TaskType.PULL_REF_METRICS, "foo", "") is True


def test_local_unqueue_task():
    store = LocalStore()
    store.queue_task(TaskType.PULL_METRICS, "foo", "")
    assert store.executed_tasks_count() == 0
    store.unqueue_task(TaskType.PULL_METRICS, "foo")
    assert store.executed_tasks_count() == 1


def test_local_currently_queued_tasks_count():
    store = LocalStore()
    store.queue_task(TaskType.PULL_METRICS, "foo", "")
    store.queue_task(TaskType.PULL_METRICS, "bar", "")
    store.queue_task(TaskType.PULL_METRICS, "baz", "")

    assert store.currently_queued_tasks_count() == 3
    store.unqueue_task(TaskType.PULL_METRICS, "foo")
    assert store.currently_queued_tasks_count() == 2


def test_local_executed_tasks_count():
    store = LocalStore()
    store.queue_task(TaskType.PULL_METRICS, "foo", "")
    store.queue_task(TaskType.PULL_METRICS, "bar", "")
    store.unqueue_task(TaskType.PULL_METRICS, "foo")
    store.unqueue_task(TaskType.PULL_METRICS, "foo")

    assert store.executed_tasks_count() == 1


def test_local_unqueue_unknown_task_type():
    store = LocalStore()
    store.unqueue_task(TaskType.GARBAGE_COLLECT_REFS, "nope")
    assert store.executed_tasks_count() == 0
    assert store.currently_queued_tasks_count() == 0


def test_local_task_can_be_requeued_after_unqueue():
    store = LocalStore()
    store.queue_task(TaskType.PULL_METRICS, "foo", "")
    store.unqueue_task(TaskType.PULL_METRICS, "foo")
    assert store.queue_task(TaskType.PULL_METRICS, "foo", "") is True