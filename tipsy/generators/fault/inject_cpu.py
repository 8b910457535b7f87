"""CPU stress applied from an ephemeral container."""

from kubernetes import client

from tipsy.errors import InvalidMethodError
from tipsy.generators.fault.base import EphemeralFaultInjector, action_env
from tipsy.service.kubectl import KubeCtl

METHOD_STRESS_NG = "stress-ng"
METHOD_YES = "yes"
METHODS = (METHOD_STRESS_NG, METHOD_YES)

STRESS_NG_IMAGE = "ghcr.io/chaos-tools/stress-ng:latest"
YES_IMAGE = "alpine"

CPU_STRESS_PREFIX = "tipsy-cpu-stress"

RESOURCES = client.V1ResourceRequirements(
    requests={"cpu": "100m", "memory": "64Mi"},
    limits={"cpu": "500m", "memory": "128Mi"},
)


def stress_command(method: str, duration: float) -> tuple[str, list[str]]:
    """Return the image and command for a stress method. Methods are case sensitive."""
    seconds = int(duration)
    if method == METHOD_STRESS_NG:
        return STRESS_NG_IMAGE, ["stress-ng", "--cpu", "1", "--timeout", f"{seconds}s"]
    if method == METHOD_YES:
        return YES_IMAGE, ["sh", "-c", f"yes > /dev/null & sleep {seconds}"]
    raise InvalidMethodError(f"unsupported method: {method} (expected one of {', '.join(METHODS)})")


class CpuStressInjector(EphemeralFaultInjector):
    description = "CPU stress injection"
    fault = "CPU stress"

    def __init__(self, kubectl: KubeCtl, namespace: str, method: str):
        stress_command(method, 0)
        super().__init__(kubectl, namespace)
        self.method = method
        self.detail = f" using method '{method}'"

    def container_prefix(self) -> str:
        return CPU_STRESS_PREFIX

    def build_container(self, name: str, action_id: str, duration: float) -> client.V1EphemeralContainer:
        image, command = stress_command(self.method, duration)
        return client.V1EphemeralContainer(
            name=name,
            image=image,
            command=command,
            env=action_env(action_id),
            resources=RESOURCES,
        )

    def describe(self, duration: float) -> list[str]:
        image, command = stress_command(self.method, duration)
        return [
            f"Add ephemeral container with image: {image}",
            f"Command: {' '.join(command)}",
            f"Duration: {int(duration)}s",
        ]
