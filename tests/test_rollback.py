import json

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from tests.kube_objects import make_pod
from tipsy.errors import LedgerParseError
from tipsy.generators.fault.base import ACTION_ID_ENV
from tipsy.paths import backup_path
from tipsy.rollback.engine import RollbackEngine, container_matches, filter_actions, strip_server_fields
from tipsy.state.ledger import (
    ACTION_CPUSTRESS,
    ACTION_KILL,
    ACTION_LATENCY,
    ACTION_MISROUTE,
    ACTION_PACKETLOSS,
    ChaosAction,
)


def ephemeral(name, action_id=None):
    env = [client.V1EnvVar(name=ACTION_ID_ENV, value=action_id)] if action_id else None
    return client.V1EphemeralContainer(name=name, image="img", env=env)


@pytest.fixture
def rollback_dir(tmp_path):
    return tmp_path / "rollback"


@pytest.fixture
def engine(kubectl, ledger, rollback_dir):
    return RollbackEngine(kubectl, ledger, rollback_dir)


def write_backup(rollback_dir, service="web", namespace="default"):
    path = backup_path(rollback_dir, service, namespace)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(
            {
                "apiVersion": "v1",
                "kind": "Endpoints",
                "metadata": {"name": service, "namespace": namespace, "resourceVersion": "42", "uid": "u1"},
                "subsets": [{"addresses": [{"ip": "10.0.0.1"}], "ports": [{"port": 80}]}],
            }
        )
    )
    return path


def test_filter_actions():
    actions = [
        ChaosAction(ACTION_KILL, "a", "default"),
        ChaosAction(ACTION_LATENCY, "a", "default"),
        ChaosAction(ACTION_LATENCY, "b", "default"),
    ]

    assert filter_actions(actions) == actions
    assert filter_actions(actions, action_type=ACTION_LATENCY) == actions[1:]
    assert filter_actions(actions, pod="a") == actions[:2]
    assert filter_actions(actions, ACTION_LATENCY, "b") == [actions[2]]


def test_container_matches_markers_without_recorded_name():
    action = ChaosAction(ACTION_LATENCY, "web-0", "default")
    markers = ("latency-injector", "tipsy-")

    assert container_matches(ephemeral("latency-injector-1700000000"), action, markers)
    assert container_matches(ephemeral("tipsy-debug"), action, markers)
    assert not container_matches(ephemeral("debugger"), action, markers)


def test_container_matches_recorded_name_or_action_id():
    action = ChaosAction(
        ACTION_LATENCY, "web-0", "default", metadata={"container": "latency-injector-1", "actionId": "abc"}
    )
    markers = ("latency-injector",)

    assert container_matches(ephemeral("latency-injector-1"), action, markers)
    assert container_matches(ephemeral("renamed", action_id="abc"), action, markers)
    assert not container_matches(ephemeral("latency-injector-2", action_id="other"), action, markers)


def test_strip_server_fields():
    snapshot = {"metadata": {"name": "web", "resourceVersion": "1", "managedFields": [], "uid": "u"}}

    assert strip_server_fields(snapshot) == {"metadata": {"name": "web", "uid": "u"}}


def test_mixed_ledger_rollback(engine, ledger, core_api, rollback_dir):
    ledger.save(ChaosAction(ACTION_LATENCY, "web-0", "default"))
    ledger.save(ChaosAction(ACTION_CPUSTRESS, "web-1", "default"))
    ledger.save(ChaosAction(ACTION_MISROUTE, "web", "default"))
    unknown = ledger.save(ChaosAction("teleport", "web-2", "default"))
    backup = write_backup(rollback_dir)

    def read_pod(name, namespace):
        if name == "web-0":
            return make_pod(name, ephemeral=[ephemeral("latency-injector-1"), ephemeral("debugger")])
        return make_pod(name, ephemeral=[ephemeral("tipsy-cpu-stress-1")])

    core_api.read_namespaced_pod.side_effect = read_pod

    summary = engine.run()

    assert (summary.attempted, summary.succeeded, summary.failed) == (4, 3, 1)
    assert summary.failed_actions == [unknown]
    assert ledger.load() == [unknown]

    patches = {c.args[0]: c.args[2] for c in core_api.patch_namespaced_pod_ephemeralcontainers.call_args_list}
    assert [c["name"] for c in patches["web-0"]["spec"]["ephemeralContainers"]] == ["debugger"]
    assert patches["web-1"]["spec"]["ephemeralContainers"] == []

    name, namespace, body = core_api.replace_namespaced_endpoints.call_args.args
    assert (name, namespace) == ("web", "default")
    assert "resourceVersion" not in body["metadata"]
    assert body["subsets"][0]["addresses"] == [{"ip": "10.0.0.1"}]
    assert not backup.exists()


def test_rollback_removes_all_matching_containers_in_one_patch(engine, ledger, core_api):
    ledger.save(ChaosAction(ACTION_PACKETLOSS, "web-0", "default"))
    core_api.read_namespaced_pod.return_value = make_pod(
        "web-0", ephemeral=[ephemeral("packetloss-injector-1"), ephemeral("packetloss-injector-2")]
    )

    engine.run()

    core_api.patch_namespaced_pod_ephemeralcontainers.assert_called_once()
    body = core_api.patch_namespaced_pod_ephemeralcontainers.call_args.args[2]
    assert body["spec"]["ephemeralContainers"] == []


def test_no_matching_container_counts_as_success(engine, ledger, core_api):
    ledger.save(ChaosAction(ACTION_LATENCY, "web-0", "default"))
    core_api.read_namespaced_pod.return_value = make_pod("web-0", ephemeral=[ephemeral("debugger")])

    summary = engine.run()

    assert summary.succeeded == 1
    core_api.patch_namespaced_pod_ephemeralcontainers.assert_not_called()
    assert ledger.load() == []


def test_kill_entries_are_cleared_without_api_calls(engine, ledger, core_api):
    ledger.save(ChaosAction(ACTION_KILL, "web-0", "default"))

    summary = engine.run()

    assert summary.succeeded == 1
    assert ledger.load() == []
    core_api.read_namespaced_pod.assert_not_called()


def test_missing_pod_keeps_entry(engine, ledger, core_api):
    action = ledger.save(ChaosAction(ACTION_LATENCY, "web-0", "default"))
    core_api.read_namespaced_pod.side_effect = ApiException(status=404, reason="Not Found")

    summary = engine.run()

    assert summary.failed == 1
    assert ledger.load() == [action]


def test_missing_backup_keeps_entry(engine, ledger, core_api):
    action = ledger.save(ChaosAction(ACTION_MISROUTE, "web", "default"))

    summary = engine.run()

    assert summary.failed == 1
    assert ledger.load() == [action]
    core_api.replace_namespaced_endpoints.assert_not_called()


def test_recorded_backup_path_is_used(engine, ledger, core_api, tmp_path):
    elsewhere = write_backup(tmp_path / "elsewhere")
    ledger.save(ChaosAction(ACTION_MISROUTE, "web", "default", metadata={"backupPath": str(elsewhere)}))

    summary = engine.run()

    assert summary.succeeded == 1
    assert not elsewhere.exists()


def test_filters_leave_other_entries(engine, ledger, core_api):
    kill = ledger.save(ChaosAction(ACTION_KILL, "web-0", "default"))
    ledger.save(ChaosAction(ACTION_KILL, "web-1", "default"))
    latency = ledger.save(ChaosAction(ACTION_LATENCY, "web-1", "default"))

    summary = engine.run(action_type=ACTION_KILL, pod="web-1")

    assert summary.attempted == 1
    assert ledger.load() == [kill, latency]


def test_dry_run_changes_nothing(engine, ledger, core_api, rollback_dir):
    ledger.save(ChaosAction(ACTION_LATENCY, "web-0", "default"))
    ledger.save(ChaosAction(ACTION_MISROUTE, "web", "default"))
    ledger.save(ChaosAction(ACTION_KILL, "web-1", "default"))
    backup = write_backup(rollback_dir)
    before = ledger.path.read_text()

    summary = engine.run(dry_run_mode=True)

    assert summary.attempted == 3
    assert ledger.path.read_text() == before
    assert backup.exists()
    core_api.read_namespaced_pod.assert_not_called()
    core_api.patch_namespaced_pod_ephemeralcontainers.assert_not_called()
    core_api.replace_namespaced_endpoints.assert_not_called()


def test_empty_ledger(engine, core_api):
    summary = engine.run()

    assert summary.attempted == 0
    core_api.read_namespaced_pod.assert_not_called()


def test_corrupt_ledger_propagates(engine, ledger):
    ledger.path.write_text("[")

    with pytest.raises(LedgerParseError):
        engine.run()


def test_transport_failure_is_isolated_to_one_action(engine, ledger, core_api):
    latency = ledger.save(ChaosAction(ACTION_LATENCY, "web-0", "default"))
    ledger.save(ChaosAction(ACTION_KILL, "web-1", "default"))
    core_api.read_namespaced_pod.side_effect = MaxRetryError(None, "/api/v1/namespaces/default/pods/web-0")

    summary = engine.run()

    assert (summary.attempted, summary.succeeded, summary.failed) == (2, 1, 1)
    assert ledger.load() == [latency]


@pytest.mark.parametrize("content", ["null", "[]", '{"metadata": "web"}'])
def test_backup_that_is_not_an_endpoints_object(engine, ledger, core_api, rollback_dir, content):
    misroute = ledger.save(ChaosAction(ACTION_MISROUTE, "web", "default"))
    ledger.save(ChaosAction(ACTION_KILL, "web-1", "default"))
    path = backup_path(rollback_dir, "web", "default")
    path.parent.mkdir(parents=True)
    path.write_text(content)

    summary = engine.run()

    assert (summary.succeeded, summary.failed) == (1, 1)
    assert ledger.load() == [misroute]
    core_api.replace_namespaced_endpoints.assert_not_called()
