"""Tests for the resource hierarchy builder."""

from kub_timeline.engine.hierarchy import (
    build_hierarchy,
    count_events,
    flatten_lanes,
    node_id_to_ref,
)
from kub_timeline.models import EventCategory, Operation, ParentSource, ResourceRef

from tests.conftest import make_event, make_notice, make_topology, ts


def _by_id(lanes):
    return {lane.id: lane for lane in flatten_lanes(lanes)}


def _deployment_chain():
    return [
        make_event(kind="Deployment", name="web", operation=Operation.ADD, at=ts(minutes=-10)),
        make_event(
            kind="ReplicaSet",
            name="web-abc",
            operation=Operation.ADD,
            owner=("Deployment", "web"),
            at=ts(minutes=-9),
        ),
        make_event(
            kind="Pod",
            name="web-abc-1",
            operation=Operation.ADD,
            owner=("ReplicaSet", "web-abc"),
            at=ts(minutes=-8),
        ),
    ]


class TestNodeIds:
    def test_lower_case_kind(self):
        assert node_id_to_ref("pod/default/web-1") == ResourceRef("Pod", "default", "web-1")

    def test_unknown_kind_kept(self):
        assert node_id_to_ref("Widget/ns/w") == ResourceRef("Widget", "ns", "w")

    def test_malformed(self):
        assert node_id_to_ref("pod") is None


class TestOwnerReferences:
    def test_nested_chain(self):
        forest = build_hierarchy(_deployment_chain())
        assert [lane.id for lane in forest] == ["Deployment/default/web"]
        rs = forest[0].children[0]
        assert rs.id == "ReplicaSet/default/web-abc"
        assert rs.parent_source == ParentSource.OWNER
        assert rs.children[0].id == "Pod/default/web-abc-1"
        assert forest[0].parent_source is None

    def test_all_events_include_descendants(self):
        forest = build_hierarchy(_deployment_chain())
        assert len(forest[0].events) == 1
        assert len(forest[0].all_events_sorted) == 3
        timestamps = [e.timestamp for e in forest[0].all_events_sorted]
        assert timestamps == sorted(timestamps)

    def test_missing_owner_makes_orphan(self):
        pod = make_event(kind="Pod", name="lonely", owner=("ReplicaSet", "gone"))
        forest = build_hierarchy([pod])
        assert [lane.id for lane in forest] == ["Pod/default/lonely"]
        assert forest[0].parent_source is None

    def test_conflicting_owners_ignored(self):
        events = [
            make_event(kind="ReplicaSet", name="a"),
            make_event(kind="ReplicaSet", name="b"),
            make_event(kind="Pod", name="p", owner=("ReplicaSet", "a")),
            make_event(kind="Pod", name="p", owner=("ReplicaSet", "b")),
        ]
        forest = build_hierarchy(events)
        assert "Pod/default/p" in [lane.id for lane in forest]

    def test_owner_in_other_namespace_not_used(self):
        events = [
            make_event(kind="ReplicaSet", name="rs", namespace="a"),
            make_event(kind="Pod", name="p", namespace="b", owner=("ReplicaSet", "rs")),
        ]
        assert len(build_hierarchy(events)) == 2

    def test_event_objects_attach_to_owner_lane(self):
        events = [
            make_event(kind="Pod", name="web-1"),
            make_event(kind="Event", name="web-1.17f", category=EventCategory.CHANGE, owner=("Pod", "web-1")),
        ]
        forest = build_hierarchy(events)
        assert [lane.id for lane in forest] == ["Pod/default/web-1"]
        assert len(forest[0].events) == 2

    def test_cycle_is_broken(self):
        events = [
            make_event(kind="Pod", name="a", owner=("Pod", "b")),
            make_event(kind="Pod", name="b", owner=("Pod", "a")),
        ]
        forest = build_hierarchy(events)
        ids = [lane.id for lane in flatten_lanes(forest)]
        assert sorted(ids) == ["Pod/default/a", "Pod/default/b"]
        assert len(forest) == 1


class TestTopologyFallback:
    def test_service_adopts_deployment(self):
        events = [
            make_event(kind="Service", name="web"),
            make_event(kind="Deployment", name="web"),
        ]
        topology = make_topology([("service/default/web", "deployment/default/web", "exposes")])
        forest = build_hierarchy(events, topology=topology)
        assert [lane.id for lane in forest] == ["Service/default/web"]
        child = forest[0].children[0]
        assert child.id == "Deployment/default/web"
        assert child.parent_source == ParentSource.TOPOLOGY

    def test_owner_reference_wins_over_topology(self):
        events = [
            make_event(kind="ReplicaSet", name="rs"),
            make_event(kind="Service", name="svc"),
            make_event(kind="Pod", name="p", owner=("ReplicaSet", "rs")),
        ]
        topology = make_topology([("service/default/svc", "pod/default/p", "exposes")])
        lanes = _by_id(build_hierarchy(events, topology=topology))
        assert [c.id for c in lanes["ReplicaSet/default/rs"].children] == ["Pod/default/p"]
        assert lanes["Service/default/svc"].children == []
        assert lanes["Pod/default/p"].parent_source == ParentSource.OWNER

    def test_skip_if_kind_visible(self):
        events = [
            make_event(kind="ReplicaSet", name="other"),
            make_event(kind="Service", name="svc"),
            make_event(kind="Pod", name="p"),
        ]
        topology = make_topology([("service/default/svc", "pod/default/p", "exposes", "ReplicaSet")])
        forest = build_hierarchy(events, topology=topology)
        assert len(forest) == 3

    def test_duplicate_edges_do_not_duplicate_children(self):
        events = [make_event(kind="Service", name="svc"), make_event(kind="Deployment", name="d")]
        edge = ("service/default/svc", "deployment/default/d", "exposes")
        forest = build_hierarchy(events, topology=make_topology([edge, edge]))
        assert len(forest) == 1
        assert len(forest[0].children) == 1

    def test_edge_to_absent_node_ignored(self):
        events = [make_event(kind="Deployment", name="d")]
        topology = make_topology([("service/default/missing", "deployment/default/d", "exposes")])
        forest = build_hierarchy(events, topology=topology)
        assert [lane.id for lane in forest] == ["Deployment/default/d"]

    def test_edge_direction_does_not_matter(self):
        # Ingress -> Service edge, yet the Ingress nests under the Service
        events = [make_event(kind="Service", name="svc"), make_event(kind="Ingress", name="ing")]
        topology = make_topology([("ingress/default/ing", "service/default/svc", "routes-to")])
        forest = build_hierarchy(events, topology=topology)
        assert [lane.id for lane in forest] == ["Service/default/svc"]
        assert forest[0].children[0].id == "Ingress/default/ing"


class TestGroupByApp:
    def test_deployment_and_service_share_app(self):
        events = [
            make_event(kind="Deployment", name="web", labels={"app": "web"}),
            make_event(kind="Service", name="web-svc", labels={"app": "web"}),
        ]
        forest = build_hierarchy(events, group_by_app=True)
        assert len(forest) == 1
        group = forest[0]
        assert group.synthetic
        assert group.kind == "App"
        assert group.app_label == "web"
        assert sorted(c.id for c in group.children) == [
            "Deployment/default/web",
            "Service/default/web-svc",
        ]
        assert all(c.parent_source == ParentSource.APP_LABEL for c in group.children)
        assert len(group.all_events_sorted) == 2

    def test_disabled_by_default(self):
        events = [
            make_event(kind="Deployment", name="web", labels={"app": "web"}),
            make_event(kind="Service", name="web-svc", labels={"app": "web"}),
        ]
        assert len(build_hierarchy(events)) == 2

    def test_single_member_not_grouped(self):
        events = [
            make_event(kind="Deployment", name="web", labels={"app": "web"}),
            make_event(kind="Service", name="api", labels={"app": "api"}),
        ]
        forest = build_hierarchy(events, group_by_app=True)
        assert not any(lane.synthetic for lane in forest)

    def test_labels_from_topology_nodes(self):
        events = [make_event(kind="Deployment", name="web"), make_event(kind="Service", name="web")]
        topology = make_topology(
            [],
            node_labels={
                "deployment/default/web": {"app.kubernetes.io/name": "shop"},
                "service/default/web": {"app.kubernetes.io/name": "shop"},
            },
        )
        forest = build_hierarchy(events, topology=topology, group_by_app=True)
        assert [lane.id for lane in forest] == ["App/default/shop"]

    def test_owned_lanes_are_not_regrouped(self):
        events = _deployment_chain() + [
            make_event(kind="Service", name="web", labels={"app": "web"}),
        ]
        forest = build_hierarchy(events, group_by_app=True)
        # Only the Service carries the label; nothing to merge it with
        assert sorted(lane.id for lane in forest) == ["Deployment/default/web", "Service/default/web"]


class TestForest:
    def test_children_ordered_by_kind(self):
        events = [
            make_event(kind="Deployment", name="d"),
            make_event(kind="Pod", name="p", owner=("Deployment", "d"), at=ts(minutes=-1)),
            make_event(kind="ReplicaSet", name="rs", owner=("Deployment", "d"), at=ts(minutes=-20)),
        ]
        forest = build_hierarchy(events)
        assert [c.kind for c in forest[0].children] == ["ReplicaSet", "Pod"]

    def test_idempotent(self):
        events = _deployment_chain() + [make_notice(kind="Pod", name="web-abc-1", at=ts(minutes=-1))]
        assert build_hierarchy(events) == build_hierarchy(events)

    def test_every_event_appears_once(self):
        events = _deployment_chain() + [make_event(kind="ConfigMap", name="settings")]
        forest = build_hierarchy(events)
        assert count_events(forest) == len(events)
        assert sum(len(lane.events) for lane in flatten_lanes(forest)) == len(events)

    def test_problem_paints_after_benign_at_same_instant(self):
        at = ts(minutes=-5)
        events = [
            make_event(kind="Pod", name="web-1", at=at, event_id="bad", reason="CrashLoopBackOff"),
            make_event(kind="Pod", name="web-1", at=at, event_id="ok"),
        ]
        lane = build_hierarchy(events)[0]
        assert [e.id for e in lane.all_events_sorted] == ["ok", "bad"]

    def test_empty_input(self):
        assert build_hierarchy([]) == []

    def test_root_selects_containing_tree(self):
        forest = build_hierarchy(_deployment_chain(), root=ResourceRef("Pod", "default", "web-abc-1"))
        assert [lane.id for lane in forest] == ["Deployment/default/web"]

    def test_unknown_root_gives_placeholder(self):
        forest = build_hierarchy(_deployment_chain(), root=ResourceRef("Pod", "default", "nope"))
        assert [lane.id for lane in forest] == ["Pod/default/nope"]
        assert forest[0].events == []
