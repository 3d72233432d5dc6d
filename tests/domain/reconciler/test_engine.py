from __future__ import annotations

import asyncio

import pytest

from edgeconverge.domain.depgraph import (
    CycleDetectedError,
    DependencyGraph,
    DependencyUnsatisfiedError,
    ItemRef,
)
from edgeconverge.domain.reconciler import (
    ConfiguratorError,
    ConfiguratorNotFoundError,
    ConfiguratorRegistry,
    ItemStatus,
    NotSupportedError,
    OperationKind,
    OperationStatus,
    Reconciler,
)
from tests.support.items import RecordingConfigurator, make_item, ref

IF = ItemRef("interface", "eth0")


def _graph(*items: object) -> DependencyGraph:
    return DependencyGraph.from_items(items)  # type: ignore[arg-type]


def _setup(**options: object) -> tuple[Reconciler, RecordingConfigurator]:
    configurator = RecordingConfigurator(**options)  # type: ignore[arg-type]
    registry = ConfiguratorRegistry()
    registry.register("fake", configurator)
    return Reconciler(registry), configurator


def _interface_and_radvd(
    *, background: set[tuple[str, str]] | None = None
) -> tuple[Reconciler, RecordingConfigurator, DependencyGraph]:
    journal: list[tuple[str, str]] = []
    interfaces = RecordingConfigurator(journal=journal)
    daemons = RecordingConfigurator(journal=journal, background=background or set())
    registry = ConfiguratorRegistry()
    registry.register("interface", interfaces)
    registry.register("radvd", daemons)
    intended = _graph(
        make_item("eth0", kind="interface"),
        make_item("eth0", kind="radvd", requires=(IF,)),
    )
    return Reconciler(registry), daemons, intended


def test_creates_dependency_before_dependent() -> None:
    async def scenario() -> None:
        reconciler, daemons, intended = _interface_and_radvd()

        report = await reconciler.reconcile(intended)

        assert daemons.journal == [("create", "eth0"), ("create", "eth0")]
        assert [op.ref for op in report.operations] == [IF, ItemRef("radvd", "eth0")]
        assert report.status_for(IF) is ItemStatus.CREATED
        assert report.status_for(ItemRef("radvd", "eth0")) is ItemStatus.CREATED
        assert report.converged
        assert set(reconciler.current.refs) == {IF, ItemRef("radvd", "eth0")}

    asyncio.run(scenario())


def test_second_pass_with_same_intent_is_a_no_op() -> None:
    async def scenario() -> None:
        reconciler, daemons, intended = _interface_and_radvd()
        await reconciler.reconcile(intended)
        daemons.journal.clear()

        report = await reconciler.reconcile(intended)

        assert daemons.journal == []
        assert report.operations == []
        assert set(report.summary()) == {ItemStatus.UNCHANGED}

    asyncio.run(scenario())


def test_removing_dependent_only_deletes_dependent() -> None:
    async def scenario() -> None:
        reconciler, daemons, intended = _interface_and_radvd()
        await reconciler.reconcile(intended)
        daemons.journal.clear()

        report = await reconciler.reconcile(_graph(make_item("eth0", kind="interface")))

        assert daemons.journal == [("delete", "eth0")]
        assert report.operations[0].kind is OperationKind.DELETE
        assert report.operations[0].ref == ItemRef("radvd", "eth0")
        assert report.status_for(ItemRef("radvd", "eth0")) is ItemStatus.DELETED
        assert report.status_for(IF) is ItemStatus.UNCHANGED
        assert reconciler.current.refs == (IF,)

    asyncio.run(scenario())


def test_removing_everything_deletes_dependents_first() -> None:
    async def scenario() -> None:
        reconciler, _, intended = _interface_and_radvd()
        await reconciler.reconcile(intended)

        report = await reconciler.reconcile(DependencyGraph())

        assert [op.ref for op in report.operations] == [ItemRef("radvd", "eth0"), IF]
        assert len(reconciler.current) == 0

    asyncio.run(scenario())


def test_cycle_rejects_pass_before_any_operation() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup()
        intended = _graph(make_item("a", requires=("b",)), make_item("b", requires=("a",)))

        with pytest.raises(CycleDetectedError):
            await reconciler.reconcile(intended)

        assert configurator.journal == []
        assert len(reconciler.current) == 0
        assert reconciler.in_progress == frozenset()

    asyncio.run(scenario())


def test_failure_blocks_dependents_but_not_independent_items() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(fail={("create", "a")})
        intended = _graph(
            make_item("a"),
            make_item("b", requires=("a",)),
            make_item("c"),
        )

        report = await reconciler.reconcile(intended)

        failed = report.outcome_for(ref("a"))
        assert failed is not None
        assert failed.status is ItemStatus.FAILED
        assert isinstance(failed.error, ConfiguratorError)
        assert isinstance(failed.error.__cause__, RuntimeError)
        assert report.status_for(ref("b")) is ItemStatus.BLOCKED
        assert report.status_for(ref("c")) is ItemStatus.CREATED
        assert "b" not in configurator.calls("create")
        assert reconciler.current.refs == (ref("c"),)

        configurator.fail.clear()
        retry = await reconciler.reconcile(intended)
        assert retry.status_for(ref("a")) is ItemStatus.CREATED
        assert retry.status_for(ref("b")) is ItemStatus.CREATED

    asyncio.run(scenario())


def test_unsatisfied_dependency_is_blocked_without_operations() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup()

        report = await reconciler.reconcile(_graph(make_item("radvd", requires=("eth0",))))

        outcome = report.outcome_for(ref("radvd"))
        assert outcome is not None
        assert outcome.status is ItemStatus.BLOCKED
        assert isinstance(outcome.error, DependencyUnsatisfiedError)
        assert configurator.journal == []

    asyncio.run(scenario())


def test_item_losing_its_dependency_is_torn_down_and_blocked() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup()
        await reconciler.reconcile(_graph(make_item("eth0"), make_item("radvd", requires=("eth0",))))
        configurator.journal.clear()

        report = await reconciler.reconcile(_graph(make_item("radvd", requires=("eth0",))))

        assert configurator.journal == [("delete", "radvd"), ("delete", "eth0")]
        assert report.status_for(ref("radvd")) is ItemStatus.BLOCKED
        assert report.status_for(ref("eth0")) is ItemStatus.DELETED
        assert len(reconciler.current) == 0

    asyncio.run(scenario())


def test_changed_item_is_modified_in_place() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup()
        await reconciler.reconcile(_graph(make_item("eth0", value="mtu=1500")))

        report = await reconciler.reconcile(_graph(make_item("eth0", value="mtu=9000")))

        assert configurator.calls("modify") == ["eth0"]
        assert report.status_for(ref("eth0")) is ItemStatus.MODIFIED
        assert reconciler.current.require(ref("eth0")).value == "mtu=9000"  # type: ignore[attr-defined]

    asyncio.run(scenario())


def test_recreate_tears_down_dependents_first_and_restores_them() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(recreate_on_change=True)
        await reconciler.reconcile(
            _graph(make_item("bridge", value="v1"), make_item("radvd", requires=("bridge",)))
        )
        configurator.journal.clear()

        report = await reconciler.reconcile(
            _graph(make_item("bridge", value="v2"), make_item("radvd", requires=("bridge",)))
        )

        assert configurator.journal == [
            ("delete", "radvd"),
            ("delete", "bridge"),
            ("create", "bridge"),
            ("create", "radvd"),
        ]
        assert report.status_for(ref("bridge")) is ItemStatus.RECREATED
        assert report.status_for(ref("radvd")) is ItemStatus.RECREATED
        assert reconciler.current.require(ref("bridge")).value == "v2"  # type: ignore[attr-defined]

    asyncio.run(scenario())


def test_modify_not_supported_switches_to_recreate() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(modify_not_supported=True)
        await reconciler.reconcile(_graph(make_item("radvd", value="ni-1")))
        configurator.journal.clear()
        intended = _graph(make_item("radvd", value="ni-2"))

        first = await reconciler.reconcile(intended)

        outcome = first.outcome_for(ref("radvd"))
        assert outcome is not None
        assert outcome.status is ItemStatus.PENDING
        assert isinstance(outcome.error, NotSupportedError)
        assert reconciler.resume_requested

        second = await reconciler.reconcile(intended)

        assert configurator.journal == [("delete", "radvd"), ("create", "radvd")]
        assert second.status_for(ref("radvd")) is ItemStatus.RECREATED
        assert not reconciler.resume_requested

    asyncio.run(scenario())


def test_supports_modify_false_plans_recreate_directly() -> None:
    async def scenario() -> None:
        configurator = RecordingConfigurator()
        configurator.supports_modify = False  # type: ignore[attr-defined]
        registry = ConfiguratorRegistry()
        registry.register("fake", configurator)
        reconciler = Reconciler(registry)
        await reconciler.reconcile(_graph(make_item("radvd", value="ni-1")))
        configurator.journal.clear()

        report = await reconciler.reconcile(_graph(make_item("radvd", value="ni-2")))

        assert configurator.journal == [("delete", "radvd"), ("create", "radvd")]
        assert report.status_for(ref("radvd")) is ItemStatus.RECREATED

    asyncio.run(scenario())


def test_missing_configurator_fails_item_and_blocks_dependents() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup()
        intended = _graph(
            make_item("vlan", kind="unknown"),
            make_item("radvd", requires=(ItemRef("unknown", "vlan"),)),
        )

        report = await reconciler.reconcile(intended)

        outcome = report.outcome_for(ItemRef("unknown", "vlan"))
        assert outcome is not None
        assert outcome.status is ItemStatus.FAILED
        assert isinstance(outcome.error, ConfiguratorNotFoundError)
        assert report.status_for(ref("radvd")) is ItemStatus.BLOCKED
        assert configurator.journal == []

    asyncio.run(scenario())


def test_external_items_satisfy_dependencies_but_are_never_configured() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup()
        intended = _graph(
            make_item("eth0", external=True),
            make_item("radvd", requires=("eth0",)),
        )

        report = await reconciler.reconcile(intended)

        assert configurator.journal == [("create", "radvd")]
        assert ref("eth0") not in report.outcomes
        assert reconciler.current.refs == (ref("radvd"),)

    asyncio.run(scenario())


def test_independent_items_are_configured_concurrently() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(delay=0.05)

        report = await reconciler.reconcile(_graph(make_item("a"), make_item("b"), make_item("c")))

        assert report.converged
        assert configurator.max_active == 3

    asyncio.run(scenario())


def test_background_operation_is_not_duplicated_across_passes() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(background={("create", "a")})
        intended = _graph(make_item("a"), make_item("b", requires=("a",)))

        first = await reconciler.reconcile(intended)

        assert first.status_for(ref("a")) is ItemStatus.IN_PROGRESS
        assert first.status_for(ref("b")) is ItemStatus.PENDING
        assert first.in_progress == frozenset({ref("a")})
        assert first.async_ops_in_progress

        second = await reconciler.reconcile(intended)

        assert configurator.calls("create") == ["a"]
        assert second.status_for(ref("a")) is ItemStatus.IN_PROGRESS
        assert second.status_for(ref("b")) is ItemStatus.PENDING

        configurator.complete("create", "a")
        await asyncio.wait_for(reconciler.wait_for_async(), timeout=1)
        assert reconciler.resume_requested
        assert reconciler.in_progress == frozenset()

        third = await reconciler.reconcile(intended)

        assert [op.ref for op in third.async_completions] == [ref("a")]
        assert third.async_completions[0].status is OperationStatus.COMPLETED
        assert third.async_completions[0].background
        assert third.status_for(ref("a")) is ItemStatus.UNCHANGED
        assert third.status_for(ref("b")) is ItemStatus.CREATED
        assert configurator.calls("create") == ["a", "b"]

    asyncio.run(scenario())


def test_failed_background_operation_is_reported_and_retried() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(background={("create", "a")})
        intended = _graph(make_item("a"))
        await reconciler.reconcile(intended)

        configurator.complete("create", "a", RuntimeError("daemon did not start"))
        await asyncio.wait_for(reconciler.wait_for_async(), timeout=1)

        assert ref("a") not in reconciler.current
        report = await reconciler.reconcile(intended)

        completion = report.async_completions[0]
        assert completion.status is OperationStatus.FAILED
        assert isinstance(completion.error, ConfiguratorError)
        assert report.status_for(ref("a")) is ItemStatus.IN_PROGRESS
        assert configurator.calls("create") == ["a", "a"]

        configurator.complete("create", "a")
        await reconciler.wait_idle()
        assert ref("a") in reconciler.current

    asyncio.run(scenario())


def test_change_during_background_create_stays_pending_without_blocking() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(background={("create", "a")})
        await reconciler.reconcile(_graph(make_item("a", value="v1")))
        changed = _graph(make_item("a", value="v2"))

        queued = await asyncio.wait_for(reconciler.reconcile(changed), timeout=1)

        assert queued.status_for(ref("a")) is ItemStatus.PENDING
        assert configurator.calls("modify") == []
        assert reconciler.in_progress == frozenset({ref("a")})

        configurator.complete("create", "a")
        await asyncio.wait_for(reconciler.wait_for_async(), timeout=1)
        report = await reconciler.reconcile(changed)

        assert configurator.journal == [("create", "a"), ("modify", "a")]
        assert report.status_for(ref("a")) is ItemStatus.MODIFIED
        assert reconciler.current.require(ref("a")).value == "v2"  # type: ignore[attr-defined]

    asyncio.run(scenario())


def test_item_dropped_while_create_runs_is_deleted_after_create_completes() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(background={("create", "x")})
        await reconciler.reconcile(_graph(make_item("x")))

        dropped = await reconciler.reconcile(_graph())

        assert dropped.status_for(ref("x")) is ItemStatus.PENDING
        assert configurator.journal == [("create", "x")]

        configurator.complete("create", "x")
        await asyncio.wait_for(reconciler.wait_for_async(), timeout=1)
        report = await reconciler.reconcile(_graph())

        assert configurator.journal == [("create", "x"), ("delete", "x")]
        assert report.status_for(ref("x")) is ItemStatus.DELETED
        assert ref("x") not in reconciler.current
        assert reconciler.in_progress == frozenset()

    asyncio.run(scenario())


def test_background_delete_holds_back_dependents_of_item_turned_external() -> None:
    async def scenario() -> None:
        reconciler, configurator = _setup(background={("delete", "x")})
        await reconciler.reconcile(_graph(make_item("x")))

        deleting = await reconciler.reconcile(_graph())
        assert deleting.status_for(ref("x")) is ItemStatus.IN_PROGRESS

        intended = _graph(make_item("x", external=True), make_item("z", requires=("x",)))
        waiting = await reconciler.reconcile(intended)

        assert waiting.status_for(ref("z")) is ItemStatus.PENDING
        assert configurator.calls("create") == ["x"]

        configurator.complete("delete", "x")
        await asyncio.wait_for(reconciler.wait_for_async(), timeout=1)
        assert reconciler.in_progress == frozenset()
        assert ref("x") not in reconciler.current

        report = await reconciler.reconcile(intended)

        assert [op.ref for op in report.async_completions] == [ref("x")]
        assert report.async_completions[0].status is OperationStatus.COMPLETED
        assert report.status_for(ref("z")) is ItemStatus.CREATED
        assert configurator.journal == [("create", "x"), ("delete", "x"), ("create", "z")]
        await asyncio.wait_for(reconciler.wait_idle(), timeout=1)

    asyncio.run(scenario())



def test_initial_current_graph_is_respected() -> None:
    async def scenario() -> None:
        configurator = RecordingConfigurator()
        registry = ConfiguratorRegistry()
        registry.register("fake", configurator)
        reconciler = Reconciler(registry, current=_graph(make_item("eth0")))

        report = await reconciler.reconcile(_graph(make_item("eth0"), make_item("eth1")))

        assert configurator.journal == [("create", "eth1")]
        assert report.status_for(ref("eth0")) is ItemStatus.UNCHANGED

    asyncio.run(scenario())
