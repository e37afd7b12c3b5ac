"""Custom exception hierarchy for ShiftDeck configuration and deployments."""


class ShiftDeckError(Exception):
    """Base exception for all ShiftDeck errors.

    All ShiftDeck-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI and in embedding applications.
    """

    pass


class ConfigError(ShiftDeckError):
    """Exception raised for configuration errors.

    Raised when deployer settings or request files cannot be loaded, parsed
    or validated.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class InvalidRequestError(ShiftDeckError):
    """Exception raised for definition-time deployment request errors.

    These are detected synchronously, before any cluster object is created:
    an application id that is too long, conflicting exposure options, a
    malformed label list, or deploying an app that already exists.

    Attributes:
        field: The request field or property key at fault
        message: Human-readable error message
    """

    def __init__(self, field: str, message: str) -> None:
        """Create a request validation error."""
        self.field = field
        self.message = message
        super().__init__(f"Invalid deployment request '{field}': {message}")


class DeploymentError(ShiftDeckError):
    """Exception raised when a deployment operation fails.

    Attributes:
        operation: The operation that failed (build, deploy, watch, ...)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize DeploymentError with the failing operation.

        Args:
            operation: Name of the operation that failed
            message: Descriptive error message
        """
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")


class ArtifactReadError(DeploymentError):
    """Error raised when an application artifact cannot be read.

    Fatal for the deployment: an unreadable artifact is never treated as
    "no build needed".
    """

    def __init__(self, artifact: str, original_error: Exception | None = None) -> None:
        """Create an artifact read error.

        Args:
            artifact: Description of the artifact that could not be read
            original_error: Underlying I/O error, if any
        """
        self.artifact = artifact
        message = f"Could not read artifact {artifact}"
        if original_error:
            message += f": {original_error}"
        super().__init__(operation="fingerprint", message=message)


class BuildSubmissionError(DeploymentError):
    """Error raised when the cluster rejects a build pipeline or build run.

    Attributes:
        retryable: True when resubmitting the same request may succeed
            (conflicting concurrent modification, server-side failure)
        status: HTTP status returned by the cluster, if known
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str = "build",
        retryable: bool = False,
        status: int | None = None,
    ) -> None:
        """Create a build submission error."""
        self.retryable = retryable
        self.status = status
        super().__init__(operation=operation, message=message)


class ClusterNotAvailableError(DeploymentError):
    """Error raised when no cluster configuration can be loaded."""

    def __init__(self, operation: str = "connect", reason: str | None = None) -> None:
        """Create a cluster availability error.

        Args:
            operation: Operation that required the cluster
            reason: Optional underlying cause
        """
        message = (
            "Cluster is not available. Ensure a kubeconfig is present "
            "or the process runs inside a cluster pod."
        )
        if reason:
            message += f"\nOriginal error: {reason}"
        super().__init__(operation=operation, message=message)


class WatchClosedError(DeploymentError):
    """Watch stream ended before a terminal build event was observed.

    The build outcome is unknown; the next deploy re-evaluates whether a
    reusable build exists.
    """

    def __init__(self, label_selector: str, reason: str | None = None) -> None:
        """Create a watch-closed error for a label selector."""
        self.label_selector = label_selector
        message = f"Build watch on '{label_selector}' closed before completion"
        if reason:
            message += f": {reason}"
        super().__init__(operation="watch", message=message)


class RolloutError(DeploymentError):
    """One or more rollout triggers failed.

    Attributes:
        failures: Exceptions keyed by the workload id that failed to roll out
    """

    def __init__(self, failures: dict[str, Exception]) -> None:
        """Create an aggregate rollout error."""
        self.failures = failures
        ids = ", ".join(sorted(failures))
        super().__init__(
            operation="rollout",
            message=f"Rollout failed for {len(failures)} instance(s): {ids}",
        )
