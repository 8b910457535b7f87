"""Misroute Service traffic by rewriting its Endpoints object."""

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from kubernetes import client

from tipsy.errors import BackupError
from tipsy.logger import dry_run
from tipsy.paths import backup_path
from tipsy.service.kubectl import KubeCtl
from tipsy.service.selector import PodSelector

logger = logging.getLogger("all.tipsy.misroute")


def is_pod_ready(pod: client.V1Pod) -> bool:
    conditions = (pod.status.conditions or []) if pod.status else []
    return any(c.type == "Ready" and c.status == "True" for c in conditions)


def endpoint_ports(service_ports: list[client.V1ServicePort] | None) -> list[client.CoreV1EndpointPort]:
    return [
        client.CoreV1EndpointPort(name=p.name, port=p.port, protocol=p.protocol) for p in service_ports or []
    ]


def build_subsets(pods: list[client.V1Pod], service_ports) -> list[client.V1EndpointSubset]:
    """Partition pods by the Ready condition into at most two subsets sharing the Service's ports.

    Pods without an IP cannot be addressed and are left out.
    """
    if not service_ports:
        return []
    ready, not_ready = [], []
    for pod in pods:
        pod_ip = pod.status.pod_ip if pod.status else None
        if not pod_ip:
            logger.debug(f"Skipping pod '{pod.metadata.name}' - no pod IP assigned")
            continue
        address = client.V1EndpointAddress(
            ip=pod_ip,
            target_ref=client.V1ObjectReference(
                kind="Pod",
                namespace=pod.metadata.namespace,
                name=pod.metadata.name,
                uid=pod.metadata.uid,
            ),
        )
        (ready if is_pod_ready(pod) else not_ready).append(address)

    ports = endpoint_ports(service_ports)
    subsets = []
    if ready:
        subsets.append(client.V1EndpointSubset(addresses=ready, ports=ports))
    if not_ready:
        subsets.append(client.V1EndpointSubset(not_ready_addresses=not_ready, ports=ports))
    return subsets


@dataclass
class MisrouteReport:
    service: str
    namespace: str
    subsets: list
    backup_path: Path | None = None
    applied: bool = False


class EndpointMisrouter:
    def __init__(self, kubectl: KubeCtl, namespace: str, rollback_dir: Path):
        self.kubectl = kubectl
        self.namespace = namespace
        self.rollback_dir = Path(rollback_dir)
        self.selector = PodSelector(kubectl)

    def backup_path(self, service: str) -> Path:
        return backup_path(self.rollback_dir, service, self.namespace)

    def save_backup(self, endpoints: client.V1Endpoints, service: str) -> Path:
        path = self.backup_path(service)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self.kubectl.serialize(endpoints), indent=2), encoding="utf-8")
        except OSError as e:
            raise BackupError(f"failed to write endpoints backup {path}: {e}") from e
        logger.info(f"Saved original endpoints to {path} for rollback")
        return path

    def misroute(
        self,
        service: str,
        remove_all: bool = False,
        replace_selector: str = "",
        dry_run_mode: bool = False,
    ) -> MisrouteReport:
        """Remove every endpoint of ``service`` or point it at pods matching ``replace_selector``.

        The two modes are mutually exclusive and validated by the caller. Outside
        dry run the current Endpoints are written to disk before the single update.
        """
        logger.info(f"Starting misroute operation for service '{service}' in namespace '{self.namespace}'")

        svc = self.kubectl.get_service(service, self.namespace)
        service_ports = svc.spec.ports if svc.spec else []
        logger.info(f"Found service '{service}' with {len(service_ports or [])} ports")

        endpoints = self.kubectl.get_endpoints(service, self.namespace)

        report = MisrouteReport(service=service, namespace=self.namespace, subsets=[])
        if not dry_run_mode:
            report.backup_path = self.save_backup(endpoints, service)

        if remove_all:
            logger.info("Removing all endpoint subsets")
        elif replace_selector:
            logger.info(f"Replacing endpoints with pods matching selector '{replace_selector}'")
            pods = self.selector.select(self.namespace, replace_selector)
            report.subsets = build_subsets(pods, service_ports) if pods else []

        if dry_run_mode:
            dry_run(logger, f"Would update endpoints for service '{service}':")
            if not report.subsets:
                dry_run(logger, "  - Remove all endpoint subsets (no traffic routing)")
            else:
                dry_run(logger, f"  - Replace with {len(report.subsets)} endpoint subset(s)")
                for i, subset in enumerate(report.subsets, start=1):
                    addresses = len(subset.addresses or subset.not_ready_addresses or [])
                    dry_run(logger, f"    Subset {i}: {addresses} addresses, {len(subset.ports or [])} ports")
            return report

        modified = copy.deepcopy(endpoints)
        modified.subsets = report.subsets
        self.kubectl.replace_endpoints(service, self.namespace, modified)
        report.applied = True
        logger.info("Successfully updated service endpoints")
        return report
