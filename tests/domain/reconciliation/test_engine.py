from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from driftless.adapters.providers import InMemoryProvider
from driftless.domain.document import Configuration
from driftless.domain.model import UNKNOWN, ActionKind, Template
from driftless.domain.ports.provider import ResourceSchema
from driftless.domain.reconciliation import Plan, Reconciler
from tests.helpers.declarations import declare, ref, rid

if TYPE_CHECKING:
    from collections.abc import Callable

    from driftless.adapters.state_file import JsonStateFile
    from driftless.config import ExecutionConfig
    from driftless.domain.model import Declaration
    from driftless.domain.ports.provider import ProviderContext
    from tests.helpers.recording import RecordingSleep

    type ReconcilerFactory = Callable[[InMemoryProvider], Reconciler]


def _configuration(*declarations: Declaration, **outputs: object) -> Configuration:
    return Configuration(declarations=declarations, outputs=outputs)


def _labels(plan: Plan) -> list[str]:
    return [action.label for action in plan.changes]


@pytest.fixture
def reconciler_for(
    state_file: JsonStateFile,
    context: ProviderContext,
    execution: ExecutionConfig,
    sleep: RecordingSleep,
) -> ReconcilerFactory:
    def build(provider: InMemoryProvider) -> Reconciler:
        return Reconciler(provider, state_file, context=context, execution=execution, sleep=sleep)

    return build


def test_apply_then_replan_then_remove_dependent(
    provider: InMemoryProvider, reconciler_for: ReconcilerFactory
) -> None:
    reconciler = reconciler_for(provider)
    a = declare("thing.a", {"size": 1})
    b = declare("thing.b", {"parent": ref("thing.a")})

    first = reconciler.plan(_configuration(a, b))
    assert _labels(first) == ["create thing.a", "create thing.b"]
    assert reconciler.apply(first).succeeded

    second = reconciler.plan(_configuration(a, b))
    assert not second.has_changes
    assert [action.kind for action in second.actions] == [ActionKind.NOOP, ActionKind.NOOP]

    third = reconciler.plan(_configuration(a))
    assert _labels(third) == ["delete thing.b"]
    assert reconciler.apply(third).succeeded
    assert list(provider.objects("thing")) == ["thing-0001"]


def test_plan_has_no_side_effects(
    provider: InMemoryProvider, reconciler_for: ReconcilerFactory, state_file: JsonStateFile
) -> None:
    reconciler_for(provider).plan(_configuration(declare("bucket.main", {"name": "logs"})))

    assert state_file.list_records() == ()
    assert provider.operations("create") == []


def test_schema_lookup_retries_transient_errors(
    provider: InMemoryProvider, reconciler_for: ReconcilerFactory, sleep: RecordingSleep
) -> None:
    provider.fail("schema", transient=True)

    plan = reconciler_for(provider).plan(_configuration(declare("bucket.main", {"name": "logs"})))

    assert _labels(plan) == ["create bucket.main"]
    assert sleep.delays == [0.1]


def test_create_before_destroy_replacement_repoints_dependents(
    reconciler_for: ReconcilerFactory, state_file: JsonStateFile
) -> None:
    provider = InMemoryProvider(
        {"bucket": ResourceSchema(immutable=frozenset({"name"}), computed=frozenset({"id", "arn"}))}
    )
    reconciler = reconciler_for(provider)
    policy = declare("policy.main", {"bucket": ref("bucket.main")})
    reconciler.apply(
        reconciler.plan(
            _configuration(
                declare("bucket.main", {"name": "logs"}, create_before_destroy=True), policy
            )
        )
    )

    plan = reconciler.plan(
        _configuration(
            declare("bucket.main", {"name": "archive"}, create_before_destroy=True), policy
        )
    )
    assert _labels(plan) == [
        "create bucket.main (replacement)",
        "update policy.main",
        "delete bucket.main (deposed bucket-0001)",
    ]
    report = reconciler.apply(plan)

    assert report.succeeded
    assert list(provider.objects("bucket")) == ["bucket-0002"]
    bucket = state_file.get(rid("bucket.main"))
    policy_record = state_file.get(rid("policy.main"))
    assert bucket is not None
    assert policy_record is not None
    assert bucket.deposed == ()
    assert policy_record.attributes["bucket"] == "bucket-0002"


def test_destroy_deletes_everything_in_reverse_order(
    provider: InMemoryProvider, reconciler_for: ReconcilerFactory, state_file: JsonStateFile
) -> None:
    reconciler = reconciler_for(provider)
    configuration = _configuration(
        declare("bucket.main", {"name": "logs"}),
        declare("policy.main", {"bucket": ref("bucket.main")}),
    )
    reconciler.apply(reconciler.plan(configuration))

    plan = reconciler.plan(configuration, destroy=True)
    report = reconciler.apply(plan)

    assert _labels(plan) == ["delete policy.main", "delete bucket.main"]
    assert report.succeeded
    assert provider.objects() == {}
    assert state_file.list_records() == ()


def test_refresh_detects_drift_and_plan_reverts_it(
    provider: InMemoryProvider, reconciler_for: ReconcilerFactory
) -> None:
    reconciler = reconciler_for(provider)
    configuration = _configuration(declare("bucket.main", {"name": "logs"}))
    reconciler.apply(reconciler.plan(configuration))
    provider.seed("bucket", "bucket-0001", {"name": "tampered"})

    plan = reconciler.plan(configuration, refresh=True)

    (change,) = plan.changes
    assert change.kind is ActionKind.UPDATE
    assert change.changes["name"].before == "tampered"
    assert reconciler.apply(plan).succeeded
    assert provider.objects("bucket")["bucket-0001"]["name"] == "logs"


def test_refresh_forgets_objects_deleted_remotely(
    provider: InMemoryProvider, reconciler_for: ReconcilerFactory, state_file: JsonStateFile
) -> None:
    reconciler = reconciler_for(provider)
    configuration = _configuration(
        declare("bucket.main", {"name": "logs"}), declare("bucket.spare", {"name": "spare"})
    )
    reconciler.apply(reconciler.plan(configuration))
    provider.remove("bucket", "bucket-0001")

    result = reconciler.refresh()

    assert result.removed == (rid("bucket.main"),)
    assert result.unchanged == (rid("bucket.spare"),)
    assert state_file.get(rid("bucket.main")) is None
    assert _labels(reconciler.plan(configuration)) == ["create bucket.main"]


def test_outputs_are_unknown_until_applied(
    provider: InMemoryProvider, reconciler_for: ReconcilerFactory
) -> None:
    reconciler = reconciler_for(provider)
    configuration = _configuration(
        declare("bucket.main", {"name": "logs"}),
        bucket_id=ref("bucket.main"),
        label=Template(parts=("bucket ", ref("bucket.main", "name"))),
    )

    assert reconciler.outputs(configuration) == {"bucket_id": UNKNOWN, "label": UNKNOWN}

    reconciler.apply(reconciler.plan(configuration))

    assert reconciler.outputs(configuration) == {
        "bucket_id": "bucket-0001",
        "label": "bucket logs",
    }
