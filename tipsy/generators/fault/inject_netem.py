"""Network faults (delay, packet loss) applied with tc netem from an ephemeral container."""

import shlex

from kubernetes import client

from tipsy.generators.fault.base import EphemeralFaultInjector, action_env
from tipsy.service.kubectl import KubeCtl

NETEM_IMAGE = "ghcr.io/chaos-tools/netem:latest"
NETEM_INTERFACE = "eth0"

# Checked in order; the first one with a live PID owns the target network namespace.
COMMON_PROCESSES = ["nginx", "apache2", "httpd", "node", "python", "java", "go", "main"]

NETEM_SCRIPT = """\
MAIN_PID=""
for name in {processes}; do
  MAIN_PID=$(ps -o pid= -C "$name" 2>/dev/null | head -1 | tr -d ' ')
  if [ -n "$MAIN_PID" ]; then
    break
  fi
done
if [ -z "$MAIN_PID" ]; then
  MAIN_PID=1
fi
nsenter -t "$MAIN_PID" -n tc qdisc add dev {iface} root netem {rule}
sleep {seconds}
nsenter -t "$MAIN_PID" -n tc qdisc del dev {iface} root netem 2>/dev/null || true
"""


def netem_script(rule: str, duration: float) -> str:
    return NETEM_SCRIPT.format(
        processes=" ".join(COMMON_PROCESSES),
        iface=NETEM_INTERFACE,
        rule=rule,
        seconds=int(duration),
    )


class NetemFaultInjector(EphemeralFaultInjector):
    kind = ""
    prefix = ""

    def __init__(self, kubectl: KubeCtl, namespace: str, value: str):
        super().__init__(kubectl, namespace)
        self.value = value

    def container_prefix(self) -> str:
        return self.prefix

    def rule(self) -> str:
        return f"{self.kind} {shlex.quote(self.value)}"

    def build_container(self, name: str, action_id: str, duration: float) -> client.V1EphemeralContainer:
        return client.V1EphemeralContainer(
            name=name,
            image=NETEM_IMAGE,
            command=["sh", "-c", netem_script(self.rule(), duration)],
            env=action_env(action_id),
            security_context=client.V1SecurityContext(
                privileged=True,
                capabilities=client.V1Capabilities(add=["NET_ADMIN", "SYS_PTRACE"]),
            ),
        )

    def describe(self, duration: float) -> list[str]:
        return [
            f"Add ephemeral container with image: {NETEM_IMAGE}",
            f"Command: nsenter -t <pid> -n tc qdisc add dev {NETEM_INTERFACE} root netem {self.rule()}",
            f"Duration: {int(duration)}s",
        ]


class LatencyInjector(NetemFaultInjector):
    description = "Latency injection"
    fault = "latency"
    kind = "delay"
    prefix = "latency-injector"

    def __init__(self, kubectl: KubeCtl, namespace: str, delay: str):
        super().__init__(kubectl, namespace, delay)
        self.detail = f" with delay '{delay}'"


class PacketLossInjector(NetemFaultInjector):
    description = "Packet loss injection"
    fault = "packet loss"
    kind = "loss"
    prefix = "packetloss-injector"

    def __init__(self, kubectl: KubeCtl, namespace: str, loss: str):
        super().__init__(kubectl, namespace, loss)
        self.detail = f" with loss '{loss}'"
