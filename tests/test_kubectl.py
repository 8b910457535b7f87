from unittest.mock import patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import MaxRetryError

from tipsy.errors import ClientConstructionError, KubeApiError
from tipsy.service.kubectl import load_client_config


def test_api_errors_are_wrapped(kubectl, core_api):
    core_api.read_namespaced_pod.side_effect = ApiException(status=404, reason="Not Found")

    with pytest.raises(KubeApiError) as exc:
        kubectl.get_pod("web-0", "prod")

    assert exc.value.status == 404
    assert (exc.value.operation, exc.value.kind, exc.value.name, exc.value.namespace) == ("get", "pod", "web-0", "prod")
    assert "Not Found" in str(exc.value)


def test_patch_body_is_serialized_from_models(kubectl, core_api):
    container = client.V1EphemeralContainer(
        name="debug",
        image="busybox",
        security_context=client.V1SecurityContext(privileged=True),
    )

    kubectl.patch_pod_ephemeral_containers("web-0", "default", [container])

    core_api.patch_namespaced_pod_ephemeralcontainers.assert_called_once_with(
        "web-0",
        "default",
        {
            "spec": {
                "ephemeralContainers": [
                    {"name": "debug", "image": "busybox", "securityContext": {"privileged": True}},
                ]
            }
        },
    )


def test_explicit_kubeconfig_failure():
    with patch("tipsy.service.kubectl.config.load_kube_config", side_effect=ConfigException("bad file")):
        with pytest.raises(ClientConstructionError, match="/tmp/missing"):
            load_client_config("/tmp/missing")


def test_falls_back_to_default_kubeconfig():
    with patch(
        "tipsy.service.kubectl.config.load_incluster_config", side_effect=ConfigException("not in cluster")
    ), patch("tipsy.service.kubectl.config.load_kube_config") as load:
        api_client = load_client_config()

    assert isinstance(api_client, client.ApiClient)
    assert load.call_args.kwargs["config_file"].endswith(".kube/config")


def test_no_configuration_available():
    with patch("tipsy.service.kubectl.config.load_incluster_config", side_effect=ConfigException("no")), patch(
        "tipsy.service.kubectl.config.load_kube_config", side_effect=ConfigException("no")
    ):
        with pytest.raises(ClientConstructionError):
            load_client_config()


def test_transport_errors_are_wrapped(kubectl, core_api):
    core_api.delete_namespaced_pod.side_effect = MaxRetryError(None, "/api/v1/namespaces/default/pods/web-0")

    with pytest.raises(KubeApiError) as exc:
        kubectl.delete_pod("web-0", "default")

    assert exc.value.status is None
    assert isinstance(exc.value.cause, MaxRetryError)
