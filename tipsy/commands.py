"""Command handlers: run one chaos operation and record what it did."""

import logging

from tipsy.config import TipsyConfig
from tipsy.errors import InvalidArgumentError, LedgerIOError
from tipsy.generators.fault.base import EphemeralFaultInjector, InjectionReport
from tipsy.generators.fault.inject_cpu import CpuStressInjector
from tipsy.generators.fault.inject_kill import KillReport, PodKiller
from tipsy.generators.fault.inject_misroute import EndpointMisrouter, MisrouteReport
from tipsy.generators.fault.inject_netem import LatencyInjector, PacketLossInjector
from tipsy.rollback.engine import RollbackEngine, RollbackSummary
from tipsy.service.kubectl import KubeCtl
from tipsy.state.ledger import (
    ACTION_CPUSTRESS,
    ACTION_KILL,
    ACTION_LATENCY,
    ACTION_MISROUTE,
    ACTION_PACKETLOSS,
    ActionLedger,
    ChaosAction,
)
from tipsy.utils.duration import parse_duration

logger = logging.getLogger("all.tipsy.commands")


def record(ledger: ActionLedger, action: ChaosAction):
    try:
        ledger.save(action)
    except LedgerIOError as e:
        logger.warning(f"Failed to save state for '{action.target_pod}': {e}")


def run_kill(
    config: TipsyConfig,
    kubectl: KubeCtl,
    ledger: ActionLedger,
    selector: str,
    count: int = 1,
    namespace: str | None = None,
) -> KillReport:
    namespace = config.resolve_namespace(namespace)
    report = PodKiller(kubectl, namespace).kill(selector, count, config.dry_run)
    for pod in report.deleted:
        record(
            ledger,
            ChaosAction(
                type=ACTION_KILL,
                target_pod=pod,
                namespace=namespace,
                metadata={"selector": selector, "count": str(count)},
            ),
        )
    logger.info("Kill operation completed successfully")
    return report


def _run_injection(
    config: TipsyConfig,
    ledger: ActionLedger,
    injector: EphemeralFaultInjector,
    action_type: str,
    selector: str,
    duration: str,
    metadata: dict[str, str],
) -> InjectionReport:
    seconds = parse_duration(duration)
    report = injector.inject(selector, seconds, config.dry_run)
    # Dry runs produce no injections, so nothing is recorded for them.
    for injection in report.injections:
        record(
            ledger,
            ChaosAction(
                type=action_type,
                target_pod=injection.pod_name,
                namespace=injector.namespace,
                metadata={
                    **metadata,
                    "duration": duration,
                    "selector": selector,
                    "container": injection.container_name,
                    "actionId": injection.action_id,
                    "expiresAt": injection.expires_at,
                },
            ),
        )
    return report


def run_latency(
    config: TipsyConfig,
    kubectl: KubeCtl,
    ledger: ActionLedger,
    selector: str,
    delay: str = "200ms",
    duration: str = "30s",
    namespace: str | None = None,
) -> InjectionReport:
    injector = LatencyInjector(kubectl, config.resolve_namespace(namespace), delay)
    report = _run_injection(config, ledger, injector, ACTION_LATENCY, selector, duration, {"delay": delay})
    logger.info("Latency injection operation completed successfully")
    return report


def run_packetloss(
    config: TipsyConfig,
    kubectl: KubeCtl,
    ledger: ActionLedger,
    selector: str,
    loss: str = "30%",
    duration: str = "30s",
    namespace: str | None = None,
) -> InjectionReport:
    injector = PacketLossInjector(kubectl, config.resolve_namespace(namespace), loss)
    report = _run_injection(config, ledger, injector, ACTION_PACKETLOSS, selector, duration, {"loss": loss})
    logger.info("Packet loss injection operation completed successfully")
    return report


def run_cpustress(
    config: TipsyConfig,
    kubectl: KubeCtl,
    ledger: ActionLedger,
    selector: str,
    method: str = "stress-ng",
    duration: str = "60s",
    namespace: str | None = None,
) -> InjectionReport:
    injector = CpuStressInjector(kubectl, config.resolve_namespace(namespace), method)
    report = _run_injection(config, ledger, injector, ACTION_CPUSTRESS, selector, duration, {"method": method})
    logger.info("CPU stress injection operation completed successfully")
    return report


def run_misroute(
    config: TipsyConfig,
    kubectl: KubeCtl,
    ledger: ActionLedger,
    service: str,
    remove_all: bool = False,
    replace_selector: str = "",
    namespace: str | None = None,
) -> MisrouteReport:
    if remove_all and replace_selector:
        raise InvalidArgumentError("--remove-all and --replace-with-selector cannot be used together")
    if not remove_all and not replace_selector:
        raise InvalidArgumentError("either --remove-all or --replace-with-selector must be specified")

    namespace = config.resolve_namespace(namespace)
    misrouter = EndpointMisrouter(kubectl, namespace, config.rollback_dir)
    report = misrouter.misroute(service, remove_all, replace_selector, config.dry_run)
    if report.applied:
        record(
            ledger,
            ChaosAction(
                type=ACTION_MISROUTE,
                target_pod=service,
                namespace=namespace,
                metadata={
                    "service": service,
                    "remove_all": str(remove_all).lower(),
                    "replace_with_selector": replace_selector,
                    "backupPath": str(report.backup_path),
                },
            ),
        )
    logger.info("Service misrouting operation completed successfully")
    return report


def run_rollback(
    config: TipsyConfig,
    kubectl: KubeCtl,
    ledger: ActionLedger,
    action_type: str = "",
    pod: str = "",
    dry_run: bool = False,
) -> RollbackSummary:
    engine = RollbackEngine(kubectl, ledger, config.rollback_dir)
    summary = engine.run(dry_run or config.dry_run, action_type or "", pod or "")
    logger.info("Rollback operation completed successfully")
    return summary
