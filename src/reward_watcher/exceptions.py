"""Exception types shared across the reward watcher."""


class ConfigError(ValueError):
    """Bad or missing CLI argument, environment variable or ABI file."""


class ConnectivityError(ConnectionError):
    """No usable RPC connection could be established."""


class AllEndpointsUnreachable(ConnectivityError):
    """Every endpoint candidate failed to open or to answer the liveness probe."""

    def __init__(self, candidates: list[str], errors: list[str] | None = None) -> None:
        self.candidates = candidates
        self.errors = errors or []
        super().__init__(f"All {len(candidates)} RPC endpoints failed")


class SubscriptionError(Exception):
    """A log subscription could not be created or was torn down."""

    def __init__(self, source: str, cause: BaseException | str) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"{source} subscription error: {cause}")


class NotificationError(Exception):
    """The chat API call failed."""


class AbiDownloadError(Exception):
    """Fetching or storing a contract ABI failed."""
