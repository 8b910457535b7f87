"""Delete a random subset of pods."""

import logging
import random
from dataclasses import dataclass, field

from kubernetes import client

from tipsy.errors import KubeApiError
from tipsy.logger import dry_run
from tipsy.service.kubectl import KubeCtl
from tipsy.service.selector import PodSelector

logger = logging.getLogger("all.tipsy.kill")


@dataclass
class KillReport:
    selected: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


def pick_distinct(pods: list[client.V1Pod], count: int, rng: random.Random | None = None) -> list[str]:
    """Pick ``count`` distinct pod names uniformly at random, redrawing repeated indices."""
    rng = rng or random.Random()
    count = max(0, min(count, len(pods)))
    used: set[int] = set()
    selected: list[str] = []
    while len(selected) < count:
        index = rng.randrange(len(pods))
        if index in used:
            continue
        used.add(index)
        selected.append(pods[index].metadata.name)
    return selected


class PodKiller:
    def __init__(self, kubectl: KubeCtl, namespace: str, rng: random.Random | None = None):
        self.kubectl = kubectl
        self.namespace = namespace
        self.selector = PodSelector(kubectl)
        self.rng = rng or random.Random()

    def kill(self, selector: str, count: int, dry_run_mode: bool = False) -> KillReport:
        """Delete up to ``count`` random pods matching ``selector``.

        Pods are not filtered by phase. In dry run the selection is reported but
        nothing is deleted.
        """
        report = KillReport()
        pods = self.selector.select(self.namespace, selector)
        if not pods:
            return report

        if count <= 0:
            logger.warning(f"Invalid count {count}, no pods will be deleted")
            return report
        if count > len(pods):
            logger.warning(f"Only {len(pods)} pods available, limiting kill count to {len(pods)}")

        report.selected = pick_distinct(pods, count, self.rng)

        if dry_run_mode:
            dry_run(logger, f"Would delete {len(report.selected)} pod(s):")
            for name in report.selected:
                dry_run(logger, f"  - {name}")
            return report

        logger.info(f"Deleting {len(report.selected)} pod(s):")
        for name in report.selected:
            logger.info(f"  Deleting pod: {name}")
            try:
                self.kubectl.delete_pod(name, self.namespace)
            except KubeApiError as e:
                logger.error(f"Failed to delete pod '{name}': {e}")
                continue
            logger.info(f"  Successfully deleted pod: {name}")
            report.deleted.append(name)
        return report
