"""
All migration-related exceptions
"""


class MigrationError(Exception):
    """Base migration error"""


class InvalidConfigError(MigrationError):
    """Submission rejected before any state was created"""


class DuplicateActiveMigrationError(MigrationError):
    """Another non-terminal migration already exists for the same endpoint pair"""

    def __init__(self, source: str, destination: str, existing_id: str | None = None):
        self.source = source
        self.destination = destination
        self.existing_id = existing_id

        message = f"An active migration already exists for {source} -> {destination}"
        if existing_id:
            message += f" (id={existing_id})"
        super().__init__(message)


class MigrationNotFoundError(MigrationError):
    """No migration with the given id"""

    def __init__(self, migration_id: str):
        self.migration_id = migration_id
        super().__init__(f"Migration not found: {migration_id}")


class InvalidStateTransitionError(MigrationError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, migration_id: str, from_status, to_status):
        self.migration_id = migration_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition for migration {migration_id}: "
            f"{from_status.value} → {to_status.value}"
        )


class TransferSpawnError(MigrationError):
    """The transfer tool could not be started"""


class TransferTimeoutError(MigrationError):
    """The transfer exceeded its wall-clock ceiling"""

    def __init__(self, migration_id: str, timeout_seconds: float):
        self.migration_id = migration_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Transfer for migration {migration_id} exceeded {timeout_seconds:g}s and was terminated"
        )


class ReconciliationError(MigrationError):
    """Reconciliation could not produce a result"""


class ReconciliationAbandonedError(ReconciliationError):
    """The migration was abandoned while its reconciliation was in flight"""


class ListingError(ReconciliationError):
    """Listing an endpoint failed for a reason other than an empty or absent bucket"""

    def __init__(self, endpoint: str, returncode: int | None, detail: str = ""):
        self.endpoint = endpoint
        self.returncode = returncode
        self.detail = detail

        message = f"Listing {endpoint} failed"
        if returncode is not None:
            message += f" with exit code {returncode}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class SchedulerError(MigrationError):
    """A scheduler control operation could not be applied"""


class MissingDependencyError(MigrationError):
    """
    Raised when a required external tool is not installed.

    This exception provides clear installation instructions to help users
    quickly resolve missing tool issues.
    """

    INSTALL_COMMANDS = {
        "mc": "brew install minio/stable/mc",
        "prometheus_client": "pip install prometheus-client",
    }

    def __init__(self, package: str, feature: str | None = None):
        self.package = package
        self.feature = feature

        install_cmd = self.INSTALL_COMMANDS.get(package, f"pip install {package}")

        if feature:
            message = (
                f"\n╔══════════════════════════════════════════════════════════════╗\n"
                f"║  Missing Dependency: {package:<40} ║\n"
                f"╠══════════════════════════════════════════════════════════════╣\n"
                f"║  Required for: {feature:<45} ║\n"
                f"║  Install with: {install_cmd:<45} ║\n"
                f"╚══════════════════════════════════════════════════════════════╝"
            )
        else:
            message = (
                f"\n╔══════════════════════════════════════════════════════════════╗\n"
                f"║  Missing Dependency: {package:<40} ║\n"
                f"╠══════════════════════════════════════════════════════════════╣\n"
                f"║  Install with: {install_cmd:<45} ║\n"
                f"╚══════════════════════════════════════════════════════════════╝"
            )

        super().__init__(message)
