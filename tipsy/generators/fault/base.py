"""Shared plumbing for ephemeral-container fault injectors."""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import yaml
from kubernetes import client

from tipsy.errors import KubeApiError
from tipsy.logger import dry_run
from tipsy.service.kubectl import KubeCtl
from tipsy.service.selector import PodSelector
from tipsy.state.ledger import RFC3339
from tipsy.utils.duration import format_duration

logger = logging.getLogger("all.tipsy.inject")

ACTION_ID_ENV = "TIPSY_ACTION_ID"


class CompletionHandle:
    """Fires once a fault's duration has elapsed.

    Runs on a daemon thread that only sleeps and logs; nothing is cleaned up
    here. Callers may ``wait()`` on it, the CLI never does.
    """

    def __init__(self, pod_name: str, description: str, duration: float):
        self.pod_name = pod_name
        self.description = description
        self.duration = duration
        self.expires_at = datetime.now(timezone.utc) + timedelta(seconds=duration)
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"completion-{pod_name}", daemon=True)

    def start(self) -> "CompletionHandle":
        self._thread.start()
        return self

    def _run(self):
        time.sleep(self.duration)
        logger.info(f"{self.description} completed for pod '{self.pod_name}'")
        self._done.set()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)


@dataclass
class Injection:
    """One ephemeral container attached to one pod."""

    pod_name: str
    container_name: str
    action_id: str
    handle: CompletionHandle

    @property
    def expires_at(self) -> str:
        return self.handle.expires_at.strftime(RFC3339)


@dataclass
class InjectionReport:
    affected_pods: list[str] = field(default_factory=list)
    injections: list[Injection] = field(default_factory=list)
    failed_pods: list[str] = field(default_factory=list)


def new_action_id() -> str:
    return uuid.uuid4().hex[:12]


class EphemeralFaultInjector:
    """Base class: select running pods and attach one ephemeral container to each.

    Subclasses implement ``build_container`` and ``describe``.
    """

    description = "Fault injection"
    fault = "fault"
    detail = ""

    def __init__(self, kubectl: KubeCtl, namespace: str):
        self.kubectl = kubectl
        self.namespace = namespace
        self.selector = PodSelector(kubectl)
        self.completions: dict[str, CompletionHandle] = {}

    def build_container(self, name: str, action_id: str, duration: float) -> client.V1EphemeralContainer:
        raise NotImplementedError

    def container_prefix(self) -> str:
        raise NotImplementedError

    def describe(self, duration: float) -> list[str]:
        """Dry-run lines describing the container and command."""
        raise NotImplementedError

    def inject(self, selector: str, duration: float, dry_run_mode: bool = False) -> InjectionReport:
        """Attach the fault to every Running pod matching ``selector``.

        A failed patch is logged and the loop moves on. Listing errors propagate.
        """
        report = InjectionReport()
        for pod in self.selector.select_running(self.namespace, selector):
            name = pod.metadata.name
            logger.info(
                f"Injecting {self.fault} to pod '{name}'{self.detail} "
                f"for duration '{format_duration(duration)}'"
            )
            if dry_run_mode:
                self._log_dry_run(name, duration)
                continue
            try:
                injection = self._inject_pod(pod, duration)
            except KubeApiError as e:
                logger.error(f"Failed to inject {self.fault} to pod '{name}': {e}")
                report.failed_pods.append(name)
                continue
            report.affected_pods.append(name)
            report.injections.append(injection)
        return report

    def _inject_pod(self, pod: client.V1Pod, duration: float) -> Injection:
        name = pod.metadata.name
        action_id = new_action_id()
        container_name = f"{self.container_prefix()}-{int(time.time())}"
        container = self.build_container(container_name, action_id, duration)

        existing = list(pod.spec.ephemeral_containers or []) if pod.spec else []
        self.kubectl.patch_pod_ephemeral_containers(name, self.namespace, existing + [container])
        logger.info(f"Successfully added ephemeral container '{container_name}' to pod '{name}'")

        handle = CompletionHandle(name, self.description, duration).start()
        self.completions[name] = handle
        return Injection(pod_name=name, container_name=container_name, action_id=action_id, handle=handle)

    def _log_dry_run(self, pod_name: str, duration: float):
        dry_run(logger, f"Would inject {self.fault} to pod '{pod_name}':")
        for line in self.describe(duration):
            dry_run(logger, f"  - {line}")
        preview = self.build_container(f"{self.container_prefix()}-<unixtime>", "<action-id>", duration)
        rendered = yaml.safe_dump(self.kubectl.serialize(preview), sort_keys=False).rstrip()
        for line in rendered.splitlines():
            logger.debug(f"    {line}")


def action_env(action_id: str) -> list[client.V1EnvVar]:
    return [client.V1EnvVar(name=ACTION_ID_ENV, value=action_id)]
