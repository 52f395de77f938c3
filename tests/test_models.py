"""Tests for the ChaosBlade models and the resource identity context."""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kubeblade.modules.api import (
    FINALIZER,
    PRE_SPEC_ANNOTATION,
    ChaosBlade,
    ChaosBladeSpec,
    ContainerObjectMeta,
    ExperimentStatus,
    Phase,
    ResourceIdentityContext,
    ResourceStatus,
    State,
    encode_spec,
)

from fixtures.cluster_objects import experiment, make_blade


class TestIdentifier:
    """Test the Namespace/Node/Pod/Container/Id/Runtime identifier format."""

    def test_full_identifier(self):
        meta = ContainerObjectMeta(
            namespace="default",
            node_name="node-1",
            pod_name="web-1",
            container_name="app",
            container_id="3f4e5d6c7b8a",
            container_runtime="docker",
        )
        assert meta.identifier() == "default/node-1/web-1/app/3f4e5d6c7b8a/docker"

    def test_node_identifier_keeps_empty_leading_parts(self):
        meta = ContainerObjectMeta(node_name="node-1")
        assert meta.identifier() == "/node-1/"

    def test_trailing_parts_stop_at_first_empty(self):
        meta = ContainerObjectMeta(
            namespace="default", node_name="node-1", pod_name="web-1", container_runtime="docker"
        )
        assert meta.identifier() == "default/node-1/web-1"

    @pytest.mark.parametrize("identifier", [
        "default/node-1/web-1",
        "default/node-1/web-1/app",
        "default/node-1/web-1/app/3f4e5d6c7b8a",
        "default/node-1/web-1/app/3f4e5d6c7b8a/containerd",
        "/node-1/",
    ])
    def test_parse_inverts_identifier(self, identifier):
        assert ContainerObjectMeta.parse_identifier(identifier).identifier() == identifier

    def test_parse_empty_identifier(self):
        assert ContainerObjectMeta.parse_identifier("") == ContainerObjectMeta()

    def test_copy_with_changes(self):
        meta = ContainerObjectMeta(namespace="default", pod_name="web-1")
        changed = meta.copy(pod_name="web-2")
        assert changed.pod_name == "web-2"
        assert meta.pod_name == "web-1"


class TestResourceIdentityContext:
    """Test grouping of resolved resources by node."""

    def test_groups_by_node_in_insertion_order(self):
        context = ResourceIdentityContext()
        context.add(ContainerObjectMeta(node_name="node-1", pod_name="a", node_uid="n1"))
        context.add(ContainerObjectMeta(node_name="node-2", pod_name="b"))
        context.add(ContainerObjectMeta(node_name="node-1", pod_name="c"))

        nodes = dict(context.nodes())
        assert list(nodes) == ["node-1", "node-2"]
        assert nodes["node-1"].node_uid == "n1"
        assert [meta.pod_name for meta in context.resources()] == ["a", "c", "b"]
        assert len(context) == 3

    def test_empty_context_is_falsy(self):
        assert not ResourceIdentityContext()


class TestStatusMutators:

    def test_fail_keeps_correlation_id(self):
        status = ResourceStatus(id="abc").fail("boom")
        assert status.id == "abc"
        assert status.state == State.ERROR
        assert status.success is False

    def test_succeed_records_id(self):
        status = ResourceStatus().succeed(id="abc")
        assert status.id == "abc"
        assert status.state == "Success"
        assert status.success is True

    def test_destroyed_from_marks_every_resource(self):
        prior = ExperimentStatus(
            scope="pod", target="cpu", action="fullload", success=False, state="Error",
            res_statuses=[ResourceStatus(id="a", state="Success"), ResourceStatus(id="b", state="Error")],
        )
        destroyed = ExperimentStatus.destroyed_from(prior)
        assert destroyed.success is True
        assert destroyed.state == State.DESTROYED
        assert {res.state for res in destroyed.res_statuses} == {"Destroyed"}
        assert prior.res_statuses[1].state == "Error"


class TestChaosBlade:
    """Test wire parsing and serialization of the custom resource."""

    def test_absent_phase_is_initial(self):
        blade = ChaosBlade.from_dict({"metadata": {"name": "b"}, "spec": None, "status": None})
        assert blade.phase == Phase.INITIAL
        assert blade.spec.experiments == []

    def test_literal_initial_phase_is_normalized(self):
        blade = ChaosBlade.from_dict({"metadata": {"name": "b"}, "status": {"phase": "Initial"}})
        assert blade.phase == Phase.INITIAL

    def test_null_metadata_collections(self):
        blade = ChaosBlade.from_dict({
            "metadata": {"name": "b", "finalizers": None, "annotations": None, "labels": None}
        })
        assert blade.metadata.finalizers == []
        assert blade.metadata.annotations == {}

    def test_wire_form_uses_camel_case(self):
        spec = experiment("pod", "cpu", "fullload", namespace="default")
        blade = make_blade(
            experiments=[spec],
            phase="Running",
            exp_statuses=[ExperimentStatus(
                scope="pod", success=True, state="Success",
                res_statuses=[ResourceStatus(id="x", node_name="node-1")],
            )],
        )
        wire = blade.to_dict()
        assert wire["apiVersion"] == "chaosblade.io/v1alpha1"
        assert wire["metadata"]["resourceVersion"] == "1"
        assert wire["status"]["expStatuses"][0]["resStatuses"][0]["nodeName"] == "node-1"
        assert "deletionTimestamp" not in wire["metadata"]

    def test_unknown_metadata_round_trips(self):
        raw = {
            "metadata": {"name": "b", "creationTimestamp": "2024-05-01T10:00:00Z", "managedFields": [{"manager": "kubectl"}]},
        }
        wire = ChaosBlade.from_dict(raw).to_dict()
        assert wire["metadata"]["creationTimestamp"] == "2024-05-01T10:00:00Z"
        assert wire["metadata"]["managedFields"] == [{"manager": "kubectl"}]

    def test_finalizer_helpers(self):
        blade = make_blade()
        assert not blade.has_finalizer()
        blade.add_finalizer()
        blade.add_finalizer()
        assert blade.metadata.finalizers == [FINALIZER]
        blade.remove_finalizer()
        assert not blade.has_finalizer()

    def test_deletion_requested(self):
        assert make_blade(deleting=True).deletion_requested
        assert not make_blade().deletion_requested

    def test_prior_spec_round_trip(self):
        prior = [experiment("node", "cpu", "fullload", names="node-1")]
        blade = make_blade(prior_spec=prior)
        assert blade.prior_spec() == ChaosBladeSpec(experiments=prior)

    def test_prior_spec_absent_or_garbled(self):
        assert make_blade().prior_spec() is None
        assert make_blade(annotations={PRE_SPEC_ANNOTATION: "{not json"}).prior_spec() is None

    def test_encode_spec_is_json(self):
        spec = ChaosBladeSpec(experiments=[experiment("pod", "network", "delay", time="3000")])
        decoded = json.loads(encode_spec(spec))
        assert decoded["experiments"][0]["matchers"] == [{"name": "time", "value": ["3000"]}]
