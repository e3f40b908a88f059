"""Tests for the diff engine."""
import pytest

from rtx_reconciler.engine.diff import DiffEngine, summarize_plan
from rtx_reconciler.engine.grammar import Field, Grammar, LinePattern
from rtx_reconciler.engine.schema import PlanPhase
from rtx_reconciler.errors import GrammarError
from rtx_reconciler.grammars import DNS, NAT_MASQUERADE, STATIC_ROUTE, SYSLOG


def texts(plan):
    return [command.text for command in plan.commands]


def syslog_record(**overrides):
    record = {"notice": False, "info": False, "debug": False, "hosts": []}
    record.update(overrides)
    return record


@pytest.fixture
def diff():
    return DiffEngine()


class TestScalarDiff:
    """Tests for scalar field changes."""

    def test_equal_records_give_empty_plan(self, diff):
        current = syslog_record(facility="local0", notice=True)
        plan = diff.plan(SYSLOG, {"facility": "local0", "notice": "on"}, current)
        assert plan.is_empty

    def test_set_changed_field(self, diff):
        current = syslog_record(facility="local0")
        plan = diff.plan(SYSLOG, {"facility": "local3", "debug": True}, current)
        assert texts(plan) == ["syslog facility local3", "syslog debug on"]
        assert all(step.phase == PlanPhase.UPDATE for step in plan)
        assert [step.field for step in plan] == ["facility", "debug"]

    def test_missing_value_compared_as_default(self, diff):
        """The device does not print defaults, so False matches an absent flag."""
        plan = diff.plan(SYSLOG, {"notice": False}, {"hosts": []})
        assert plan.is_empty

    def test_none_means_no_opinion(self, diff):
        current = syslog_record(facility="local0")
        assert diff.plan(SYSLOG, {"facility": None}, current).is_empty
        assert diff.plan(SYSLOG, {}, current).is_empty

    def test_callable_set_template(self, diff):
        current = {"domain_lookup": True, "private_spoof": False, "hosts": []}
        plan = diff.plan(DNS, {"domain_lookup": False}, current)
        assert texts(plan) == ["no dns domain lookup"]

    def test_list_value_rendered(self, diff):
        current = {"name_servers": ["8.8.8.8"], "domain_lookup": True, "hosts": []}
        plan = diff.plan(DNS, {"name_servers": ["1.1.1.1", "8.8.8.8"]}, current)
        assert texts(plan) == ["dns server 1.1.1.1 8.8.8.8"]

    def test_clear_only_field(self, diff):
        grammar = Grammar(
            name="t",
            query=("show config",),
            patterns=(LinePattern(r"^x (?P<flag>on)$"),),
            fields=(Field("flag", parse=lambda v: v == "on", default=False, clear="no x"),),
        )
        assert texts(diff.plan(grammar, {"flag": False}, {"flag": True})) == ["no x"]
        with pytest.raises(GrammarError):
            diff.plan(grammar, {"flag": True}, {"flag": False})


class TestCollectionDiff:
    """Tests for keyed collection changes."""

    def test_convergent_hosts(self, diff):
        """Remove what is unwanted, add what is missing, keep the rest."""
        current = syslog_record(hosts=[
            {"address": "10.0.0.1", "port": 514},
            {"address": "10.0.0.3", "port": 514},
        ])
        desired = {"hosts": [{"address": "10.0.0.1"}, {"address": "10.0.0.2"}]}

        plan = diff.plan(SYSLOG, desired, current)
        assert texts(plan) == ["no syslog host 10.0.0.3", "syslog host 10.0.0.2"]
        assert [step.phase for step in plan] == [PlanPhase.REMOVE, PlanPhase.ADD]

    def test_changed_item_replaced(self, diff):
        current = syslog_record(hosts=[{"address": "10.0.0.1", "port": 514}])
        desired = {"hosts": [{"address": "10.0.0.1", "port": 1514}]}
        plan = diff.plan(SYSLOG, desired, current)
        assert texts(plan) == ["no syslog host 10.0.0.1", "syslog host 10.0.0.1 1514"]

    def test_changed_item_updated_in_place(self, diff):
        current = {"hosts": [{"name": "nas.example.com", "address": "192.168.1.5"}]}
        desired = {"hosts": [{"name": "NAS.example.com", "address": "192.168.1.6"}]}
        plan = diff.plan(DNS, desired, current)
        assert texts(plan) == ["dns static nas.example.com 192.168.1.6"]
        assert plan.steps[0].phase == PlanPhase.UPDATE

    def test_only_stated_fields_compared(self, diff):
        bound = STATIC_ROUTE.bind(network="10.0.0.0/8")
        current = {
            "network": "10.0.0.0/8",
            "next_hops": [
                {"gateway": "192.168.1.1", "weight": 1, "filter": 100, "hide": False, "keepalive": False},
            ],
        }
        assert diff.plan(bound, {"next_hops": [{"gateway": "192.168.1.1"}]}, current).is_empty

        plan = diff.plan(bound, {"next_hops": [{"gateway": "192.168.1.1", "weight": 2}]}, current)
        assert texts(plan) == [
            "no ip route 10.0.0.0/8 gateway 192.168.1.1",
            "ip route 10.0.0.0/8 gateway 192.168.1.1 weight 2",
        ]

    def test_empty_list_removes_everything(self, diff):
        current = syslog_record(hosts=[{"address": "10.0.0.1", "port": 514}])
        assert texts(diff.plan(SYSLOG, {"hosts": []}, current)) == ["no syslog host 10.0.0.1"]

    def test_duplicate_desired_key(self, diff):
        desired = {"hosts": [{"address": "10.0.0.1"}, {"address": "10.0.0.1", "port": 1514}]}
        with pytest.raises(GrammarError, match="Duplicate"):
            diff.plan(SYSLOG, desired, syslog_record())


class TestCreate:
    """Tests for creating an absent resource."""

    def test_create_then_update_in_dependency_order(self, diff):
        bound = NAT_MASQUERADE.bind(descriptor_id=1000)
        desired = {
            "inner_network": "192.168.1.0/24",
            "outer_address": "primary",
            "static_entries": [{
                "entry_number": 1,
                "outside_address": "ipcp",
                "outside_port": 80,
                "inside_address": "192.168.1.10",
                "inside_port": 8080,
                "protocol": "TCP",
            }],
        }
        plan = diff.plan(bound, desired, None)
        assert texts(plan) == [
            "nat descriptor type 1000 masquerade",
            "nat descriptor address outer 1000 primary",
            "nat descriptor address inner 1000 192.168.1.0-192.168.1.255",
            "nat descriptor masquerade static 1000 1 ipcp:80=192.168.1.10:8080 tcp",
        ]
        assert [step.phase for step in plan] == [
            PlanPhase.CREATE, PlanPhase.UPDATE, PlanPhase.UPDATE, PlanPhase.ADD,
        ]

    def test_absent_without_create_templates(self, diff):
        plan = diff.plan(SYSLOG, {"hosts": [{"address": "10.0.0.1"}]}, None)
        assert texts(plan) == ["syslog host 10.0.0.1"]

    def test_identity_fields_not_updated(self, diff):
        bound = NAT_MASQUERADE.bind(descriptor_id=1000)
        current = {"descriptor_id": 1000, "outer_address": "primary", "static_entries": []}
        assert diff.plan(bound, {"descriptor_id": 1000, "outer_address": "primary"}, current).is_empty


class TestDeletionPlan:
    """Tests for removing a resource."""

    def test_without_delete_templates(self, diff):
        current = syslog_record(
            facility="local0",
            notice=True,
            hosts=[{"address": "10.0.0.1", "port": 514}],
        )
        plan = diff.deletion_plan(SYSLOG, current)
        assert texts(plan) == ["no syslog host 10.0.0.1", "syslog notice off", "no syslog facility"]

    def test_with_delete_templates(self, diff):
        bound = STATIC_ROUTE.bind(network="10.0.0.0/8")
        current = {"network": "10.0.0.0/8", "next_hops": [{"gateway": "192.168.1.1"}]}
        assert texts(diff.deletion_plan(bound, current)) == ["no ip route 10.0.0.0/8"]

    def test_absent_resource(self, diff):
        assert diff.deletion_plan(SYSLOG, None).is_empty


class TestDrift:
    """Tests for post-apply verification."""

    def test_no_drift(self, diff):
        actual = syslog_record(notice=True, hosts=[{"address": "10.0.0.1", "port": 514}])
        assert diff.drift(SYSLOG, {"notice": True, "hosts": [{"address": "10.0.0.1"}]}, actual) == []

    def test_drifted_fields(self, diff):
        actual = syslog_record(hosts=[{"address": "10.0.0.1", "port": 514}])
        desired = {"notice": True, "hosts": [{"address": "10.0.0.2"}]}
        assert diff.drift(SYSLOG, desired, actual) == ["notice", "hosts"]

    def test_absent_after_apply(self, diff):
        assert diff.drift(SYSLOG, {"notice": True, "hosts": []}, None) == ["hosts", "notice"]


class TestPlanOutput:
    """Tests for plan summaries."""

    def test_summary_and_dict(self, diff):
        current = syslog_record(hosts=[{"address": "10.0.0.3", "port": 514}])
        plan = diff.plan(SYSLOG, {"notice": True, "hosts": [{"address": "10.0.0.2"}]}, current)

        assert summarize_plan(plan) == {"remove": 1, "create": 0, "update": 1, "add": 1}
        assert plan.to_dict() == {
            "grammar": "syslog",
            "commands": [
                {"phase": "remove", "field": "hosts", "command": "no syslog host 10.0.0.3"},
                {"phase": "update", "field": "notice", "command": "syslog notice on"},
                {"phase": "add", "field": "hosts", "command": "syslog host 10.0.0.2"},
            ],
        }
        assert len(plan) == 3
