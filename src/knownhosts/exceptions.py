"""Exception types for the known-hosts reconciler."""


class KnownHostsError(Exception):
    """Base exception for all known-hosts reconciler errors."""
    pass


class KeyFormatError(KnownHostsError):
    """Public key text or SSH wire blob is malformed."""
    pass


class SourceError(KnownHostsError):
    """A host-key source could not be read."""
    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class ScanError(KnownHostsError):
    """A live scan target did not answer with host keys."""
    pass


class ValidationFailure(KnownHostsError):
    """The merged store violates one or more invariants and must not be installed."""
    def __init__(self, violations: list[str]) -> None:
        super().__init__(f"{len(violations)} validation violation(s): " + "; ".join(violations))
        self.violations = list(violations)


class InstallFailure(KnownHostsError):
    """Writing the known-hosts file failed; the destination was left untouched."""
    def __init__(self, reason: str, destination: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.destination = destination
