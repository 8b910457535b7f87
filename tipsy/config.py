import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from dotenv import load_dotenv

from tipsy.paths import resolve_rollback_dir, resolve_state_file

DEFAULT_NAMESPACE = "default"


@dataclass(frozen=True)
class TipsyConfig:
    """Settings shared by every command. Built once per invocation and passed down."""

    kubeconfig: str | None = None
    namespace: str = DEFAULT_NAMESPACE
    dry_run: bool = False
    verbose: bool = False
    state_file: Path = field(default_factory=resolve_state_file)
    rollback_dir: Path = field(default_factory=resolve_rollback_dir)

    @classmethod
    def from_env(cls, **overrides) -> "TipsyConfig":
        load_dotenv()
        base = cls(
            state_file=resolve_state_file(os.environ),
            rollback_dir=resolve_rollback_dir(os.environ),
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(base, **overrides)

    def resolve_namespace(self, local: str | None = None) -> str:
        """Subcommand namespace wins over the global one; both empty means 'default'."""
        return local or self.namespace or DEFAULT_NAMESPACE

    def describe(self) -> dict:
        return {
            "kubeconfig": self.kubeconfig or "",
            "namespace": self.namespace,
            "dry_run": self.dry_run,
            "verbose": self.verbose,
            "state_file": str(self.state_file),
            "rollback_dir": str(self.rollback_dir),
        }
