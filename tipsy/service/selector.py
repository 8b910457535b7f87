"""Pod selection by label selector."""

import logging

from kubernetes import client

from tipsy.service.kubectl import KubeCtl

logger = logging.getLogger("all.tipsy.selector")

POD_RUNNING = "Running"


class PodSelector:
    def __init__(self, kubectl: KubeCtl):
        self.kubectl = kubectl

    def select(self, namespace: str, selector: str) -> list[client.V1Pod]:
        """List every pod matching ``selector``; an empty result is logged, not raised."""
        logger.info(f"Searching for pods with selector '{selector}' in namespace '{namespace}'")
        pods = self.kubectl.list_pods(namespace, selector)
        if not pods:
            logger.warning(f"No pods found matching selector '{selector}' in namespace '{namespace}'")
            return []
        logger.info(f"Found {len(pods)} pod(s) matching selector")
        return pods

    def select_running(self, namespace: str, selector: str) -> list[client.V1Pod]:
        """Like ``select`` but drops pods outside the Running phase with a warning."""
        running = []
        for pod in self.select(namespace, selector):
            phase = pod.status.phase if pod.status else None
            if phase != POD_RUNNING:
                logger.warning(f"Skipping pod '{pod.metadata.name}' - not in Running state (current: {phase})")
                continue
            running.append(pod)
        return running
