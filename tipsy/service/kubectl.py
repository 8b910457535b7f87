"""Interface to the Kubernetes API used by the chaos operations."""

import logging
import os

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from tipsy.errors import ClientConstructionError, KubeApiError

logger = logging.getLogger("all.tipsy.kubectl")

DEFAULT_KUBECONFIG = os.path.join("~", ".kube", "config")

# Transport failures surface as urllib3 or socket errors rather than ApiException.
API_ERRORS = (ApiException, HTTPError, OSError)


def load_client_config(kubeconfig: str | None = None) -> client.ApiClient:
    """Build an API client.

    Priority: an explicit kubeconfig path, then in-cluster configuration,
    then ``~/.kube/config``.
    """
    configuration = client.Configuration()
    if kubeconfig:
        try:
            config.load_kube_config(config_file=kubeconfig, client_configuration=configuration)
        except (ConfigException, OSError) as e:
            raise ClientConstructionError(f"failed to build config from kubeconfig path {kubeconfig}: {e}") from e
        return client.ApiClient(configuration)

    try:
        config.load_incluster_config(client_configuration=configuration)
        logger.debug("Using in-cluster configuration")
        return client.ApiClient(configuration)
    except ConfigException:
        pass

    default_path = os.path.expanduser(DEFAULT_KUBECONFIG)
    try:
        config.load_kube_config(config_file=default_path, client_configuration=configuration)
    except (ConfigException, OSError) as e:
        raise ClientConstructionError(
            f"failed to build config from default kubeconfig location {default_path}: {e}"
        ) from e
    return client.ApiClient(configuration)


class KubeCtl:
    def __init__(self, kubeconfig: str | None = None, core_v1_api: client.CoreV1Api | None = None):
        """Initialize the KubeCtl object, loading cluster credentials unless an API is supplied."""
        if core_v1_api is None:
            self.api_client = load_client_config(kubeconfig)
            core_v1_api = client.CoreV1Api(self.api_client)
        else:
            self.api_client = client.ApiClient(client.Configuration())
        self.core_v1_api = core_v1_api

    def serialize(self, obj) -> dict:
        """Convert a typed model into the camelCase dict the API server expects."""
        return self.api_client.sanitize_for_serialization(obj)

    def list_pods(self, namespace: str, label_selector: str) -> list[client.V1Pod]:
        """Return the pods in a namespace that match a label selector."""
        try:
            return self.core_v1_api.list_namespaced_pod(namespace, label_selector=label_selector).items
        except API_ERRORS as e:
            raise KubeApiError("list", "pods", label_selector, namespace, e) from e

    def get_pod(self, name: str, namespace: str) -> client.V1Pod:
        try:
            return self.core_v1_api.read_namespaced_pod(name, namespace)
        except API_ERRORS as e:
            raise KubeApiError("get", "pod", name, namespace, e) from e

    def patch_pod_ephemeral_containers(self, name: str, namespace: str, containers: list) -> client.V1Pod:
        """Set a pod's ephemeral container list through the ephemeralcontainers subresource.

        The body is a strategic merge patch; ``containers`` may mix typed
        ``V1EphemeralContainer`` models and plain dicts.
        """
        body = {"spec": {"ephemeralContainers": [self.serialize(c) for c in containers]}}
        try:
            return self.core_v1_api.patch_namespaced_pod_ephemeralcontainers(name, namespace, body)
        except API_ERRORS as e:
            raise KubeApiError("patch ephemeral containers of", "pod", name, namespace, e) from e

    def delete_pod(self, name: str, namespace: str):
        try:
            return self.core_v1_api.delete_namespaced_pod(name, namespace)
        except API_ERRORS as e:
            raise KubeApiError("delete", "pod", name, namespace, e) from e

    def get_service(self, name: str, namespace: str) -> client.V1Service:
        try:
            return self.core_v1_api.read_namespaced_service(name, namespace)
        except API_ERRORS as e:
            raise KubeApiError("get", "service", name, namespace, e) from e

    def get_endpoints(self, name: str, namespace: str) -> client.V1Endpoints:
        try:
            return self.core_v1_api.read_namespaced_endpoints(name, namespace)
        except API_ERRORS as e:
            raise KubeApiError("get", "endpoints", name, namespace, e) from e

    def replace_endpoints(self, name: str, namespace: str, endpoints) -> client.V1Endpoints:
        """Replace an Endpoints object in a single update call; conflicts are not retried."""
        try:
            return self.core_v1_api.replace_namespaced_endpoints(name, namespace, endpoints)
        except API_ERRORS as e:
            raise KubeApiError("update", "endpoints", name, namespace, e) from e
