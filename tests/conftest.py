"""Pytest configuration and shared fixtures for ShiftDeck tests."""

from __future__ import annotations

import copy
import logging
import os
import queue
import shutil
import tempfile
import threading
from collections.abc import Generator, Iterator
from pathlib import Path
from typing import Any

import pytest

from shiftdeck.deploy.cluster import ClusterClient, ClusterWatch, ResourceKind
from shiftdeck.lib.logging_config import ROOT_LOGGER_NAME
from shiftdeck.models.build import BUILD_ID_ENV_VAR
from shiftdeck.models.settings import DeployerSettings

_STOP = object()


def _matches(labels: dict[str, str], label_selector: str) -> bool:
    for term in filter(None, label_selector.split(",")):
        key, _, value = term.partition("=")
        if labels.get(key.strip()) != value.strip():
            return False
    return True


def build_manifest(
    name: str,
    phase: str = "New",
    labels: dict[str, str] | None = None,
    fingerprint: str | None = None,
    output_image: str | None = None,
    strategy: str = "dockerStrategy",
) -> dict[str, Any]:
    """Build object as returned by the cluster."""
    env = [{"name": BUILD_ID_ENV_VAR, "value": fingerprint}] if fingerprint else []
    status: dict[str, Any] = {"phase": phase}
    if output_image:
        status["outputDockerImageReference"] = output_image
    return {
        "apiVersion": ResourceKind.BUILD.api_version,
        "kind": "Build",
        "metadata": {"name": name, "labels": dict(labels or {})},
        "spec": {"strategy": {strategy: {"env": env}}},
        "status": status,
    }


class FakeWatch(ClusterWatch):
    """In-memory watch; tests push events, ``stop`` ends the stream."""

    def __init__(self, kind: ResourceKind, label_selector: str) -> None:
        self.kind = kind
        self.label_selector = label_selector
        self.stop_count = 0
        self._events: queue.Queue[Any] = queue.Queue()

    def events(self) -> Iterator[tuple[str, dict[str, Any]]]:
        while True:
            item = self._events.get()
            if item is _STOP:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def push(self, event_type: str, manifest: dict[str, Any]) -> None:
        self._events.put((event_type, manifest))

    def push_build(
        self,
        name: str,
        phase: str,
        output_image: str | None = None,
        event_type: str = "MODIFIED",
    ) -> None:
        self.push(event_type, build_manifest(name, phase, output_image=output_image))

    def end(self) -> None:
        """End the stream without ``stop`` being called (dropped connection)."""
        self._events.put(_STOP)

    def fail(self, error: Exception) -> None:
        self._events.put(error)

    def stop(self) -> None:
        self.stop_count += 1
        self._events.put(_STOP)


class FakeClusterClient(ClusterClient):
    """In-memory cluster client recording every call.

    Attributes:
        objects: Stored manifests keyed by (kind, name)
        calls: (method, kind, name) tuples in call order
        rollouts: Workloads passed to ``deploy_latest``
        uploads: (build config, filename, data) of binary build runs
        watches: Watches opened, in order
        failures: Exceptions to raise, keyed by method name
        rollout_failures: Exceptions to raise from ``deploy_latest`` per workload
    """

    def __init__(self, namespace: str = "test-ns") -> None:
        self.namespace = namespace
        self.objects: dict[tuple[ResourceKind, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, ResourceKind | None, str]] = []
        self.rollouts: list[str] = []
        self.uploads: list[tuple[str, str, bytes]] = []
        self.build_requests: list[dict[str, Any]] = []
        self.watches: list[FakeWatch] = []
        self.failures: dict[str, Exception] = {}
        self.rollout_failures: dict[str, Exception] = {}
        self._build_numbers: dict[str, int] = {}
        self._lock = threading.Lock()

    def _record(self, method: str, kind: ResourceKind | None, name: str) -> None:
        with self._lock:
            self.calls.append((method, kind, name))
        if method in self.failures:
            raise self.failures[method]

    def calls_for(self, method: str) -> list[tuple[str, ResourceKind | None, str]]:
        return [call for call in self.calls if call[0] == method]

    def names(self, kind: ResourceKind) -> list[str]:
        return [name for (k, name) in self.objects if k is kind]

    def add(self, kind: ResourceKind, manifest: dict[str, Any]) -> dict[str, Any]:
        """Store an object without recording a call."""
        self.objects[(kind, manifest["metadata"]["name"])] = manifest
        return manifest

    def get(self, kind: ResourceKind, name: str) -> dict[str, Any] | None:
        self._record("get", kind, name)
        obj = self.objects.get((kind, name))
        return copy.deepcopy(obj) if obj is not None else None

    def list(self, kind: ResourceKind, label_selector: str) -> list[dict[str, Any]]:
        self._record("list", kind, label_selector)
        return [
            copy.deepcopy(obj)
            for (k, _), obj in list(self.objects.items())
            if k is kind
            and _matches((obj.get("metadata") or {}).get("labels") or {}, label_selector)
        ]

    def create(self, kind: ResourceKind, manifest: dict[str, Any]) -> dict[str, Any]:
        self._record("create", kind, manifest["metadata"]["name"])
        return copy.deepcopy(self.add(kind, copy.deepcopy(manifest)))

    def create_or_replace(
        self, kind: ResourceKind, manifest: dict[str, Any]
    ) -> dict[str, Any]:
        self._record("create_or_replace", kind, manifest["metadata"]["name"])
        return copy.deepcopy(self.add(kind, copy.deepcopy(manifest)))

    def delete(self, kind: ResourceKind, name: str) -> bool:
        self._record("delete", kind, name)
        return self.objects.pop((kind, name), None) is not None

    def scale(self, kind: ResourceKind, name: str, replicas: int) -> None:
        self._record("scale", kind, name)
        obj = self.objects.get((kind, name))
        if obj is not None:
            obj.setdefault("spec", {})["replicas"] = replicas

    def _start_build(
        self, build_config: str, env: list[dict[str, str]] | None = None
    ) -> dict[str, Any]:
        bc = self.objects.get((ResourceKind.BUILD_CONFIG, build_config)) or {}
        with self._lock:
            number = self._build_numbers.get(build_config, 0) + 1
            self._build_numbers[build_config] = number
        strategy = copy.deepcopy((bc.get("spec") or {}).get("strategy") or {})
        if env:
            strategy.setdefault("dockerStrategy", {})["env"] = list(env)
        build = {
            "apiVersion": ResourceKind.BUILD.api_version,
            "kind": "Build",
            "metadata": {
                "name": f"{build_config}-{number}",
                "labels": dict((bc.get("metadata") or {}).get("labels") or {}),
            },
            "spec": {"strategy": strategy},
            "status": {"phase": "New"},
        }
        return copy.deepcopy(self.add(ResourceKind.BUILD, build))

    def instantiate_build(
        self, build_config: str, build_request: dict[str, Any]
    ) -> dict[str, Any]:
        self._record("instantiate_build", ResourceKind.BUILD_CONFIG, build_config)
        self.build_requests.append(build_request)
        return self._start_build(build_config, build_request.get("env"))

    def instantiate_binary_build(
        self, build_config: str, filename: str, data: bytes
    ) -> dict[str, Any]:
        self._record("instantiate_binary_build", ResourceKind.BUILD_CONFIG, build_config)
        self.uploads.append((build_config, filename, data))
        return self._start_build(build_config)

    def deploy_latest(self, deployment_config: str) -> dict[str, Any]:
        self._record("deploy_latest", ResourceKind.DEPLOYMENT_CONFIG, deployment_config)
        if deployment_config in self.rollout_failures:
            raise self.rollout_failures[deployment_config]
        with self._lock:
            self.rollouts.append(deployment_config)
        return {"kind": "DeploymentConfig", "metadata": {"name": deployment_config}}

    def watch(self, kind: ResourceKind, label_selector: str) -> FakeWatch:
        self._record("watch", kind, label_selector)
        fake_watch = FakeWatch(kind, label_selector)
        self.watches.append(fake_watch)
        return fake_watch


@pytest.fixture
def cluster() -> FakeClusterClient:
    """In-memory cluster client."""
    return FakeClusterClient()


@pytest.fixture
def settings() -> DeployerSettings:
    """Deployer settings with no undeploy delay."""
    return DeployerSettings(namespace="test-ns", undeploy_delay=0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Provide isolated environment variables for testing.

    Yields:
        Dictionary of original environment variables

    Cleanup:
        Restores original environment after test
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def artifact_file(temp_dir: Path) -> Path:
    """A small non-archive artifact file."""
    path = temp_dir / "app-1.0.jar"
    path.write_bytes(b"application bytes")
    return path


@pytest.fixture
def make_build() -> Any:
    """Factory for Build objects as returned by the cluster."""
    return build_manifest


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo CLI logging setup so caplog sees ShiftDeck records."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    root.propagate = True
