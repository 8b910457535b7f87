"""Persisted history of chaos actions.

The ledger is a JSON array of actions, rewritten in full on every change.
Mutations hold one in-process lock across load, mutate and write; separate
processes sharing the file are not coordinated.
"""

import json
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from tipsy.errors import ActionNotFoundError, LedgerIOError, LedgerParseError

logger = logging.getLogger("all.tipsy.ledger")

ACTION_KILL = "kill"
ACTION_LATENCY = "latency"
ACTION_PACKETLOSS = "packetloss"
ACTION_CPUSTRESS = "cpustress"
ACTION_MISROUTE = "misroute"

ACTION_TYPES = (ACTION_KILL, ACTION_LATENCY, ACTION_PACKETLOSS, ACTION_CPUSTRESS, ACTION_MISROUTE)

RFC3339 = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime(RFC3339)


@dataclass(frozen=True)
class ChaosAction:
    type: str
    target_pod: str
    namespace: str
    timestamp: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "targetPod": self.target_pod,
            "namespace": self.namespace,
            "timestamp": self.timestamp,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChaosAction":
        if not isinstance(data, dict):
            raise LedgerParseError(f"ledger entry is not an object: {data!r}")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise LedgerParseError(f"ledger entry metadata is not an object: {metadata!r}")
        return cls(
            type=str(data.get("type") or ""),
            target_pod=str(data.get("targetPod") or ""),
            namespace=str(data.get("namespace") or ""),
            timestamp=str(data.get("timestamp") or ""),
            metadata={str(k): str(v) for k, v in metadata.items()},
        )


class ActionLedger:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def save(self, action: ChaosAction) -> ChaosAction:
        """Append ``action``, stamping it with the current UTC time when it has none."""
        if not action.timestamp:
            action = replace(action, timestamp=utc_now())
        with self._lock:
            actions = self._read()
            actions.append(action)
            self._write(actions)
        logger.debug(f"Recorded {action.type} action for '{action.target_pod}' in {self.path}")
        return action

    def load(self) -> list[ChaosAction]:
        return self._read()

    def delete(self, action: ChaosAction):
        """Remove the first entry equal to ``action`` in every field."""
        with self._lock:
            actions = self._read()
            try:
                actions.remove(action)
            except ValueError:
                raise ActionNotFoundError(
                    f"action not found in ledger: {action.type} '{action.target_pod}' "
                    f"in namespace '{action.namespace}' at {action.timestamp or '<no timestamp>'}"
                ) from None
            self._write(actions)

    def clear(self):
        with self._lock:
            self._write([])

    def _read(self) -> list[ChaosAction]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise LedgerIOError(f"failed to read state file {self.path}: {e}") from e
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LedgerParseError(f"failed to parse state file {self.path}: {e}") from e
        if not isinstance(data, list):
            raise LedgerParseError(f"state file {self.path} does not hold a JSON array")
        return [ChaosAction.from_dict(entry) for entry in data]

    def _write(self, actions: list[ChaosAction]):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps([a.to_dict() for a in actions], indent=2), encoding="utf-8")
        except OSError as e:
            raise LedgerIOError(f"failed to write state file {self.path}: {e}") from e
