"""Tests for custom exception hierarchy in shiftdeck.lib.errors."""

from shiftdeck.lib.errors import (
    ArtifactReadError,
    BuildSubmissionError,
    ClusterNotAvailableError,
    ConfigError,
    DeploymentError,
    InvalidRequestError,
    RolloutError,
    ShiftDeckError,
    WatchClosedError,
)


class TestShiftDeckError:
    """Tests for base ShiftDeckError exception."""

    def test_shiftdeck_error_creates_with_message(self) -> None:
        """Test that ShiftDeckError can be created with a message."""
        error = ShiftDeckError("Test error message")
        assert str(error) == "Test error message"

    def test_shiftdeck_error_is_exception(self) -> None:
        """Test that ShiftDeckError is an Exception subclass."""
        assert isinstance(ShiftDeckError("Test"), Exception)


class TestConfigError:
    """Tests for ConfigError exception."""

    def test_config_error_formats_message_with_field(self) -> None:
        """Test that ConfigError formats messages with field information."""
        error = ConfigError("namespace", "Field 'namespace' is required")
        assert "namespace" in str(error)
        assert "required" in str(error).lower()
        assert error.field == "namespace"
        assert error.message == "Field 'namespace' is required"

    def test_config_error_is_shiftdeck_error(self) -> None:
        """Test that ConfigError is a ShiftDeckError subclass."""
        assert isinstance(ConfigError("field", "message"), ShiftDeckError)


class TestInvalidRequestError:
    """Tests for InvalidRequestError exception."""

    def test_invalid_request_error_keeps_field_and_message(self) -> None:
        """Test that the offending field and message are kept."""
        error = InvalidRequestError("name", "too long")
        assert error.field == "name"
        assert error.message == "too long"
        assert "name" in str(error)

    def test_invalid_request_error_is_not_deployment_error(self) -> None:
        """Test that request errors are distinct from runtime failures."""
        error = InvalidRequestError("name", "too long")
        assert isinstance(error, ShiftDeckError)
        assert not isinstance(error, DeploymentError)


class TestDeploymentErrors:
    """Tests for DeploymentError and its subclasses."""

    def test_deployment_error_formats_operation(self) -> None:
        """Test that DeploymentError includes the failing operation."""
        error = DeploymentError(operation="deploy", message="boom")
        assert error.operation == "deploy"
        assert str(error) == "deploy failed: boom"

    def test_artifact_read_error_includes_cause(self) -> None:
        """Test that ArtifactReadError includes the artifact and the cause."""
        error = ArtifactReadError("file:///tmp/app.jar", OSError("denied"))
        assert error.operation == "fingerprint"
        assert "file:///tmp/app.jar" in error.message
        assert "denied" in error.message
        assert isinstance(error, DeploymentError)

    def test_build_submission_error_retryable_flag(self) -> None:
        """Test that BuildSubmissionError carries retryable and status."""
        error = BuildSubmissionError("conflict", retryable=True, status=409)
        assert error.retryable is True
        assert error.status == 409
        assert error.operation == "build"

    def test_build_submission_error_defaults_to_not_retryable(self) -> None:
        """Test that submission errors are not retryable by default."""
        assert BuildSubmissionError("bad request").retryable is False

    def test_cluster_not_available_error_includes_reason(self) -> None:
        """Test that ClusterNotAvailableError includes the original error."""
        error = ClusterNotAvailableError(reason="no kubeconfig")
        assert error.operation == "connect"
        assert "no kubeconfig" in error.message

    def test_watch_closed_error_names_selector(self) -> None:
        """Test that WatchClosedError names the label selector."""
        error = WatchClosedError("shiftdeck-app-id=app", "connection reset")
        assert error.label_selector == "shiftdeck-app-id=app"
        assert "connection reset" in error.message
        assert error.operation == "watch"

    def test_rollout_error_aggregates_failures(self) -> None:
        """Test that RolloutError lists every failed instance."""
        failures = {"app-1": RuntimeError("a"), "app-0": RuntimeError("b")}
        error = RolloutError(failures)
        assert error.failures is failures
        assert "2 instance(s)" in error.message
        assert "app-0, app-1" in error.message
