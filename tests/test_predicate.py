"""Tests for watch event admission."""

import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kubeblade.modules.api import FINALIZER, ExperimentStatus
from kubeblade.modules.reconciler import ChaosBladePredicate

from fixtures.cluster_objects import experiment, make_blade

CPU = experiment("node", "cpu", "fullload", names="node-1")
MEM = experiment("node", "mem", "load", names="node-1")


@pytest.fixture
def predicate():
    return ChaosBladePredicate()


class TestCreateDeleteGeneric:

    def test_create_initial(self, predicate):
        assert predicate.create(make_blade(experiments=[CPU]))

    def test_create_already_running(self, predicate):
        assert not predicate.create(make_blade(experiments=[CPU], phase="Running"))

    def test_create_while_deleting_needs_finalizer(self, predicate):
        assert predicate.create(make_blade(phase="Running", deleting=True, finalizers=[FINALIZER]))
        assert not predicate.create(make_blade(phase="Running", deleting=True))

    def test_delete(self, predicate):
        assert predicate.delete(make_blade(phase="Running"))
        assert not predicate.delete(make_blade(phase="Destroyed"))

    def test_generic_never(self, predicate):
        assert not predicate.generic(make_blade())


class TestUpdate:

    def test_spec_change(self, predicate):
        old = make_blade(experiments=[CPU], phase="Running")
        new = make_blade(experiments=[MEM], phase="Running")
        assert predicate.update(old, new)

    def test_deletion_newly_requested(self, predicate):
        old = make_blade(experiments=[CPU], phase="Running", finalizers=[FINALIZER])
        new = make_blade(experiments=[CPU], phase="Running", finalizers=[FINALIZER], deleting=True)
        assert predicate.update(old, new)

    def test_initial_to_initial(self, predicate):
        old = make_blade(experiments=[CPU])
        new = make_blade(experiments=[CPU], finalizers=[FINALIZER], resource_version="2")
        assert not predicate.update(old, new)

    def test_leaving_updating(self, predicate):
        old = make_blade(experiments=[CPU], phase="Updating")
        new = make_blade(experiments=[CPU], phase="Running")
        assert not predicate.update(old, new)

    @pytest.mark.parametrize("old_phase,new_phase", [
        (None, "Initialized"),
        ("Initialized", "Running"),
        ("Running", "Destroying"),
        ("Destroying", "Destroyed"),
    ])
    def test_phase_change(self, predicate, old_phase, new_phase):
        assert predicate.update(make_blade(experiments=[CPU], phase=old_phase), make_blade(experiments=[CPU], phase=new_phase))

    def test_status_churn_in_settled_phase(self, predicate):
        old = make_blade(experiments=[CPU], phase="Running")
        new = make_blade(
            experiments=[CPU], phase="Running",
            exp_statuses=[ExperimentStatus(scope="node", success=True, state="Success")],
        )
        assert not predicate.update(old, new)

    def test_status_churn_while_destroying(self, predicate):
        old = make_blade(experiments=[CPU], phase="Destroying")
        new = make_blade(
            experiments=[CPU], phase="Destroying",
            exp_statuses=[ExperimentStatus(scope="node", success=False, state="Error")],
        )
        assert predicate.update(old, new)

    def test_metadata_only_change(self, predicate):
        old = make_blade(experiments=[CPU], phase="Running")
        new = make_blade(experiments=[CPU], phase="Running", annotations={"owner": "sre"}, resource_version="7")
        assert not predicate.update(old, new)

    def test_unknown_old_falls_back_to_create(self, predicate):
        assert predicate.update(None, make_blade(experiments=[CPU]))
        assert not predicate.update(None, make_blade(experiments=[CPU], phase="Running"))


class TestNeedsPriorSpec:

    def test_running_spec_change(self, predicate):
        old = make_blade(experiments=[CPU], phase="Running")
        new = make_blade(experiments=[MEM], phase="Running")
        assert predicate.needs_prior_spec(old, new)

    def test_error_spec_change(self, predicate):
        old = make_blade(experiments=[CPU], phase="Error")
        new = make_blade(experiments=[MEM], phase="Error")
        assert predicate.needs_prior_spec(old, new)

    def test_already_annotated(self, predicate):
        old = make_blade(experiments=[CPU], phase="Running", prior_spec=[CPU])
        new = make_blade(experiments=[MEM], phase="Running", prior_spec=[CPU])
        assert not predicate.needs_prior_spec(old, new)

    def test_not_yet_running(self, predicate):
        old = make_blade(experiments=[CPU], phase="Initialized")
        new = make_blade(experiments=[MEM], phase="Initialized")
        assert not predicate.needs_prior_spec(old, new)

    def test_deleting(self, predicate):
        old = make_blade(experiments=[CPU], phase="Running")
        new = make_blade(experiments=[MEM], phase="Running", deleting=True)
        assert not predicate.needs_prior_spec(old, new)

    def test_same_spec(self, predicate):
        old = make_blade(experiments=[CPU], phase="Running")
        assert not predicate.needs_prior_spec(old, make_blade(experiments=[CPU], phase="Running"))
