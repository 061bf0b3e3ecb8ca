# gcpexporter

This package holds the parts of an exporter that turns GitLab CI pipelines,
jobs, environments and test reports into metrics.

## Modules

- `gcpexporter.models` defines the tracked entities as dataclasses: `Project`,
  `Ref`, `Environment`, `Deployment`, `Pipeline`, `Job`, `Runner`,
  `TestReport`, `TestSuite`, `TestCase` and `TaskSchedulingStatus`. It also
  defines the enums `RefKind` and `TaskType`.
  - `Project.key()`, `Ref.key()` and `Environment.key()` each return a stable
    CRC-32 key as a string.
  - `Ref.default_labels_values()`, `Environment.default_labels_values()` and
    `Environment.information_labels_values()` return the label values for the
    entity's metrics.
  - `new_pipeline`, `new_job`, `new_test_report`, `new_test_suite` and
    `new_test_case` build entities from GitLab API documents given as dicts.
    If a pipeline's coverage cannot be parsed, a warning is logged and the
    coverage is set to 0.
  - `new_project` and `new_ref` are constructors.
  - `get_ref_regexp(kind, branches_regexp, tags_regexp)` returns the compiled
    pattern that refs of that kind must match. An unknown kind raises
    `ValueError`.
  - `get_merge_request_iid_from_ref_name` takes `"1234"` or
    `"refs/merge-requests/1234/head"` and returns the IID. Any other input
    raises `ValueError`.
- `gcpexporter.metrics` defines `MetricKind` (an `IntEnum`) and `Metric`.
  `Metric.key()` is a CRC-32 key built from the kind and the labels that
  identify that kind. For status kinds it also includes the `status` label.
- `gcpexporter.ratelimit` throttles GitLab API calls.
  - `Limiter` is the abstract interface and `take(limiter)` blocks until a
    slot is free.
  - `LocalLimiter(maximum_rps, burstable_rps)` is an in-process token bucket.
  - `RedisLimiter(client, max_rps)` runs a server-side script so that every
    process using the same Redis server shares the rate.
  - Both raise `RateLimitError` when no slot can be given. This happens with a
    burst below 1, with a zero rate once the bucket is empty, or on a Redis
    error.
- `gcpexporter.store` defines the abstract `Store` and `LocalStore`, an
  in-memory, thread-safe store.
  - It keeps projects, environments, refs and metrics under their keys. It
    offers set, delete, get, exists, list and count operations for each kind.
  - It tracks queued tasks with `queue_task`, `unqueue_task`,
    `currently_queued_tasks_count` and `executed_tasks_count`.
  - The `get_*` methods return the stored entity with the same key as the one
    passed in. If there is none, they return the argument.
- `gcpexporter.redis_store` defines `RedisStore`, the same store kept in Redis.
  It also defines `redis_queue_key` and `new_store(redis_client, projects)`.
  - `new_store` returns a `RedisStore` when given a client. With `None` it
    returns a `LocalStore`.
  - It seeds the store with the given projects, as `Project` objects or
    names, and skips any that already exist.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from gcpexporter.models import RefKind, TaskType, new_project, new_ref
from gcpexporter.metrics import Metric, MetricKind
from gcpexporter.redis_store import new_store
from gcpexporter.ratelimit import LocalLimiter, take

store = new_store(None, [new_project("group/project")])   # in-memory store
ref = new_ref(new_project("group/project"), RefKind.BRANCH, "main")
store.set_ref(ref)

metric = Metric(kind=MetricKind.COVERAGE, labels=ref.default_labels_values(), value=87.5)
store.set_metric(metric)

if store.queue_task(TaskType.PULL_REF_METRICS, ref.key(), "process-1"):
    take(LocalLimiter(10, 10))   # wait for an API slot
    ...                          # pull the ref's metrics
    store.unqueue_task(TaskType.PULL_REF_METRICS, ref.key())
```

## Redis layout

To share state between processes, pass a `redis.Redis` client to `new_store`.
Leave `decode_responses` off. `RedisStore` uses these keys:

- Entities are msgpack-encoded into the `projects`, `environments`, `refs` and
  `metrics` hashes.
- A queued task is stored at `task:<type>:<id>` and holds the id of the
  process that queued it. That key is taken over only when the owning process
  has no `keepalive:<uuid>` key. `set_keepalive(uuid, ttl)` writes that key.
- The executed task counter is stored at `tasksExecutedCount`.
- `RedisLimiter` keeps its state at `rate:gcpe:gitlab:api`.

## What this package does not do

- It has no GitLab API client. The `new_*` helpers take documents that you
  have already fetched.
- It has no HTTP endpoint that serves metrics.
- It has no task scheduler.
- It has no configuration loading.
- It has no command-line program.