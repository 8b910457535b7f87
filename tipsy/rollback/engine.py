"""Reverse recorded chaos actions."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from tipsy.errors import BackupMissingError, TipsyError, UnknownActionTypeError
from tipsy.generators.fault.base import ACTION_ID_ENV
from tipsy.generators.fault.inject_cpu import CPU_STRESS_PREFIX
from tipsy.logger import dry_run
from tipsy.paths import backup_path
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

logger = logging.getLogger("all.tipsy.rollback")

GENERIC_MARKER = "tipsy-"
NETEM_MARKERS = ("latency-injector", "packetloss-injector", GENERIC_MARKER)
CPU_STRESS_MARKERS = (CPU_STRESS_PREFIX, GENERIC_MARKER)

# Fields the API server owns; a snapshot carrying them cannot be written back as-is.
SERVER_MANAGED_FIELDS = ("resourceVersion", "managedFields", "creationTimestamp", "generation", "selfLink")


@dataclass
class RollbackSummary:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_actions: list[ChaosAction] = field(default_factory=list)


def filter_actions(actions: list[ChaosAction], action_type: str = "", pod: str = "") -> list[ChaosAction]:
    """Keep actions matching every non-empty filter, preserving order."""
    return [
        a
        for a in actions
        if (not action_type or a.type == action_type) and (not pod or a.target_pod == pod)
    ]


def container_matches(container, action: ChaosAction, markers: tuple[str, ...]) -> bool:
    """Exact match on the recorded container or action id when the ledger has one, else name markers."""
    recorded = action.metadata.get("container")
    action_id = action.metadata.get("actionId")
    if recorded or action_id:
        if recorded and container.name == recorded:
            return True
        env = {e.name: e.value for e in (container.env or [])}
        return bool(action_id) and env.get(ACTION_ID_ENV) == action_id
    return any(marker in container.name for marker in markers)


def strip_server_fields(endpoints: dict) -> dict:
    metadata = endpoints.get("metadata") or {}
    for key in SERVER_MANAGED_FIELDS:
        metadata.pop(key, None)
    return endpoints


class RollbackEngine:
    def __init__(self, kubectl: KubeCtl, ledger: ActionLedger, rollback_dir: Path):
        self.kubectl = kubectl
        self.ledger = ledger
        self.rollback_dir = Path(rollback_dir)
        self.handlers = {
            ACTION_LATENCY: self.revert_netem,
            ACTION_PACKETLOSS: self.revert_netem,
            ACTION_CPUSTRESS: self.remove_cpu_stress,
            ACTION_MISROUTE: self.restore_endpoints,
            ACTION_KILL: self.skip_kill,
        }

    def run(self, dry_run_mode: bool = False, action_type: str = "", pod: str = "") -> RollbackSummary:
        """Reverse every ledger entry matching the filters.

        Ledger load errors propagate. Each action is reversed independently; a
        reversed action is removed from the ledger right away, a failed one stays.
        """
        logger.info("Starting rollback operation")
        summary = RollbackSummary()

        actions = self.ledger.load()
        if not actions:
            logger.info("No actions found to rollback")
            return summary

        selected = filter_actions(actions, action_type, pod)
        if not selected:
            logger.info("No actions match the specified filters")
            return summary

        logger.info(f"Found {len(selected)} action(s) to rollback")
        for action in selected:
            summary.attempted += 1
            logger.info(
                f"Rolling back {action.type} action for '{action.target_pod}' in namespace '{action.namespace}'"
            )
            try:
                self.rollback_action(action, dry_run_mode)
            except TipsyError as e:
                logger.error(f"Failed to rollback action: {e}")
                summary.failed += 1
                summary.failed_actions.append(action)
                continue

            summary.succeeded += 1
            if dry_run_mode:
                continue
            try:
                self.ledger.delete(action)
            except TipsyError as e:
                logger.warning(f"Failed to remove action from state: {e}")

        if dry_run_mode:
            logger.info(f"Dry run completed: {summary.attempted} action(s) would be rolled back")
        else:
            logger.info(f"Rollback completed: {summary.succeeded} successful, {summary.failed} failed")
            if summary.failed:
                logger.warning(f"Failed to rollback {summary.failed} action(s)")
        return summary

    def rollback_action(self, action: ChaosAction, dry_run_mode: bool = False):
        handler = self.handlers.get(action.type)
        if handler is None:
            raise UnknownActionTypeError(f"unknown action type: {action.type}")
        handler(action, dry_run_mode)

    def revert_netem(self, action: ChaosAction, dry_run_mode: bool = False):
        logger.info(f"Reverting tc netem for pod '{action.target_pod}' in namespace '{action.namespace}'")
        self._remove_ephemeral_containers(action, NETEM_MARKERS, dry_run_mode)

    def remove_cpu_stress(self, action: ChaosAction, dry_run_mode: bool = False):
        logger.info(
            f"Removing ephemeral containers from pod '{action.target_pod}' in namespace '{action.namespace}'"
        )
        self._remove_ephemeral_containers(action, CPU_STRESS_MARKERS, dry_run_mode)

    def _remove_ephemeral_containers(self, action: ChaosAction, markers: tuple[str, ...], dry_run_mode: bool):
        if dry_run_mode:
            dry_run(logger, f"Would remove ephemeral containers from pod '{action.target_pod}'")
            return

        pod = self.kubectl.get_pod(action.target_pod, action.namespace)
        existing = list(pod.spec.ephemeral_containers or []) if pod.spec else []
        matched = [c.name for c in existing if container_matches(c, action, markers)]
        if not matched:
            logger.info("No ephemeral containers found to remove")
            return

        remaining = [c for c in existing if c.name not in matched]
        self.kubectl.patch_pod_ephemeral_containers(action.target_pod, action.namespace, remaining)
        logger.info(f"Removed ephemeral container(s) {', '.join(matched)} from pod '{action.target_pod}'")

    def backup_path_for(self, action: ChaosAction) -> Path:
        recorded = action.metadata.get("backupPath")
        if recorded:
            return Path(recorded)
        return backup_path(self.rollback_dir, action.target_pod, action.namespace)

    def restore_endpoints(self, action: ChaosAction, dry_run_mode: bool = False):
        service = action.target_pod
        logger.info(f"Restoring endpoints for service '{service}' in namespace '{action.namespace}'")
        path = self.backup_path_for(action)

        if dry_run_mode:
            dry_run(logger, f"Would restore endpoints for service '{service}' from backup: {path}")
            return

        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise BackupMissingError(f"no endpoints backup for service '{service}' at {path}") from None
        except OSError as e:
            raise BackupMissingError(f"failed to read backup file {path}: {e}") from e
        try:
            snapshot = json.loads(raw)
        except json.JSONDecodeError as e:
            raise BackupMissingError(f"backup file {path} is not valid JSON: {e}") from e
        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("metadata", {}), dict):
            raise BackupMissingError(f"backup file {path} does not hold an Endpoints object")

        self.kubectl.replace_endpoints(service, action.namespace, strip_server_fields(snapshot))

        try:
            path.unlink()
        except OSError as e:
            logger.warning(f"Failed to remove backup file {path}: {e}")

        logger.info(f"Successfully restored endpoints for service '{service}'")

    def skip_kill(self, action: ChaosAction, dry_run_mode: bool = False):
        """Deleted pods cannot be brought back; report success so the entry can be cleared."""
        logger.warning(
            f"Cannot rollback kill action for pod '{action.target_pod}' in namespace "
            f"'{action.namespace}' - pod was permanently deleted"
        )
        if dry_run_mode:
            dry_run(logger, f"Would skip kill action for pod '{action.target_pod}' (cannot be rolled back)")
