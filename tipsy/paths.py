import os
from pathlib import Path

STATE_FILE_ENV = "TIPSY_STATE_FILE"
ROLLBACK_DIR_ENV = "TIPSY_ROLLBACK_DIR"

STATE_DIR_NAME = ".tipsy"
STATE_FILE_NAME = "state.json"
ROLLBACK_DIR_NAME = "rollback"


def state_dir() -> Path:
    """Per-user hidden directory, or a relative one when no home can be resolved."""
    try:
        return Path.home() / STATE_DIR_NAME
    except RuntimeError:
        return Path(STATE_DIR_NAME)


def resolve_state_file(env: dict | None = None) -> Path:
    env = os.environ if env is None else env
    override = env.get(STATE_FILE_ENV)
    if override:
        return Path(override)
    return state_dir() / STATE_FILE_NAME


def resolve_rollback_dir(env: dict | None = None) -> Path:
    env = os.environ if env is None else env
    override = env.get(ROLLBACK_DIR_ENV)
    if override:
        return Path(override)
    return state_dir() / ROLLBACK_DIR_NAME


def backup_path(rollback_dir: Path, service: str, namespace: str) -> Path:
    return Path(rollback_dir) / f"{service}_{namespace}.json"
