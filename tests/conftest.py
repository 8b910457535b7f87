from unittest.mock import MagicMock

import pytest
from kubernetes import client

from tests.kube_objects import pod_list
from tipsy.config import TipsyConfig
from tipsy.service.kubectl import KubeCtl
from tipsy.state.ledger import ActionLedger


@pytest.fixture
def core_api():
    api = MagicMock(spec=client.CoreV1Api)
    api.list_namespaced_pod.return_value = pod_list()
    return api


@pytest.fixture
def kubectl(core_api):
    return KubeCtl(core_v1_api=core_api)


@pytest.fixture
def ledger(tmp_path):
    return ActionLedger(tmp_path / "state.json")


@pytest.fixture
def config(tmp_path):
    return TipsyConfig(state_file=tmp_path / "state.json", rollback_dir=tmp_path / "rollback")
