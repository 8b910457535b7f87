"""Exception types raised by tipsy."""


class TipsyError(Exception):
    pass


class ClientConstructionError(TipsyError):
    """The Kubernetes client could not be configured."""


class KubeApiError(TipsyError):
    """A Kubernetes API call failed."""

    def __init__(self, operation: str, kind: str, name: str, namespace: str, cause: Exception):
        self.operation = operation
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.status = getattr(cause, "status", None)
        self.cause = cause
        target = f"{kind} '{name}'" if name else kind
        reason = getattr(cause, "reason", None) or str(cause)
        super().__init__(f"failed to {operation} {target} in namespace '{namespace}': {reason}")


class LedgerIOError(TipsyError):
    pass


class LedgerParseError(TipsyError):
    pass


class ActionNotFoundError(TipsyError):
    pass


class UnknownActionTypeError(TipsyError):
    pass


class BackupMissingError(TipsyError):
    pass


class BackupError(TipsyError):
    """The endpoint snapshot could not be written."""


class InvalidMethodError(TipsyError):
    pass


class InvalidDurationError(TipsyError):
    pass


class InvalidArgumentError(TipsyError):
    pass
