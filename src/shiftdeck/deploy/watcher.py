"""Build watch subscriptions.

A subscription owns exactly one server-side watch and delivers every build
event to a completion callback on its own thread. The callback decides when
to close it; the subscription never closes itself on a build event and never
reconnects a dropped stream.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from shiftdeck.deploy.cluster import ClusterClient, ClusterWatch, ResourceKind
from shiftdeck.deploy.pipeline import ObjectFactoryStep, ResourceHandle
from shiftdeck.deploy.submitter import BuildSubmitter
from shiftdeck.lib.errors import WatchClosedError
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.build import BuildRecord
from shiftdeck.models.request import DeploymentRequest

logger = get_logger(__name__)

# Callback receiving each build event and the subscription's close function
BuildCallback = Callable[[BuildRecord, Callable[[], None]], None]

# Watch event types that carry a build object
_OBJECT_EVENTS = ("ADDED", "MODIFIED")


class WatchSubscription(threading.Thread):
    """Background thread delivering build events from one watch.

    Attributes:
        label_selector: Selector the watch is bound to
        error: WatchClosedError if the stream ended before ``close`` was
            called, or the exception raised by the callback
    """

    def __init__(
        self,
        cluster_watch: ClusterWatch,
        label_selector: str,
        callback: BuildCallback,
        on_finished: Callable[[WatchSubscription], None] | None = None,
    ) -> None:
        """Create a subscription; call ``start`` to begin delivering events.

        Args:
            cluster_watch: The opened server-side watch
            label_selector: Selector the watch is bound to
            callback: Completion callback
            on_finished: Called when delivery ends, before ``wait`` returns
        """
        super().__init__(daemon=True, name=f"build-watch[{label_selector}]")
        self.label_selector = label_selector
        self.error: Exception | None = None
        self._watch = cluster_watch
        self._callback = callback
        self._on_finished = on_finished
        self._close_lock = threading.Lock()
        self._closed = threading.Event()
        self._finished = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def run(self) -> None:
        """Deliver events until the watch is closed or the stream ends."""
        try:
            self._deliver()
        except Exception as e:
            if not self.closed:
                self.error = WatchClosedError(self.label_selector, str(e))
                logger.warning(str(self.error))
        else:
            if not self.closed and self.error is None:
                self.error = WatchClosedError(self.label_selector)
                logger.warning(
                    f"Build watch on '{self.label_selector}' ended without "
                    "a terminal event; build outcome unknown"
                )
        finally:
            try:
                if self._on_finished is not None:
                    self._on_finished(self)
            finally:
                self._finished.set()

    def _deliver(self) -> None:
        for event_type, manifest in self._watch.events():
            if self.closed:
                break
            if event_type not in _OBJECT_EVENTS:
                logger.debug(f"Ignoring '{event_type}' event on '{self.label_selector}'")
                continue
            record = BuildRecord.from_manifest(manifest)
            logger.debug(
                f"Received event '{event_type}' for build '{record.name}': "
                f"{record.phase.value}"
            )
            try:
                self._callback(record, self.close)
            except Exception as e:
                logger.exception(f"Build callback failed for '{record.name}': {e}")
                self.error = e
                self.close()

    def close(self) -> None:
        """Stop the watch. Safe to call more than once."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
        logger.debug(f"Closing build watch on '{self.label_selector}'")
        self._watch.stop()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the delivery thread exits.

        Returns:
            True if the thread finished within ``timeout``
        """
        return self._finished.wait(timeout)


class BuildWatcher:
    """Opens build watch subscriptions.

    Args:
        cluster: Cluster client
    """

    def __init__(self, cluster: ClusterClient) -> None:
        self._cluster = cluster

    def watch(
        self,
        label_selector: str,
        callback: BuildCallback,
        on_finished: Callable[[WatchSubscription], None] | None = None,
    ) -> WatchSubscription:
        """Open exactly one watch on builds matching ``label_selector``.

        Args:
            label_selector: Selector scoped to the application identity
            callback: Receives every build event and the close function
            on_finished: Called when the subscription thread exits

        Returns:
            The started subscription
        """
        cluster_watch = self._cluster.watch(ResourceKind.BUILD, label_selector)
        subscription = WatchSubscription(
            cluster_watch, label_selector, callback, on_finished
        )
        subscription.start()
        return subscription


class WatchRegistry:
    """At most one active subscription per application id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: dict[str, WatchSubscription] = {}

    def register(self, app_id: str, subscription: WatchSubscription) -> None:
        """Track a subscription, closing any previous one for the same id."""
        with self._lock:
            previous = self._subscriptions.get(app_id)
            self._subscriptions[app_id] = subscription
        if previous is not None and previous is not subscription:
            logger.debug(f"Replacing active build watch for '{app_id}'")
            previous.close()

    def discard(self, app_id: str, subscription: WatchSubscription) -> None:
        """Forget a finished subscription if it is still the current one."""
        with self._lock:
            if self._subscriptions.get(app_id) is subscription:
                del self._subscriptions[app_id]

    def get(self, app_id: str) -> WatchSubscription | None:
        with self._lock:
            return self._subscriptions.get(app_id)

    def close(self, app_id: str) -> None:
        with self._lock:
            subscription = self._subscriptions.pop(app_id, None)
        if subscription is not None:
            subscription.close()

    def close_all(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class BuildWatchStep(ObjectFactoryStep):
    """Step opening a watch on an application's builds.

    Nothing is created by ``ensure``; the watch is opened and registered
    during activation, after earlier steps have created their objects.

    Args:
        watcher: Build watcher
        registry: Registry holding the subscription
        label_selector: Selector for the application's builds
        callback: Completion callback
        registry_key: Key to register the subscription under (defaults to
            the application id)
        build_name: Only events for this build run are passed on
        on_finished: Called after the subscription thread exits
    """

    name = "build watch"

    def __init__(
        self,
        watcher: BuildWatcher,
        registry: WatchRegistry,
        label_selector: str,
        callback: BuildCallback,
        registry_key: str | None = None,
        build_name: str | None = None,
        on_finished: Callable[[WatchSubscription], None] | None = None,
    ) -> None:
        self._watcher = watcher
        self._registry = registry
        self._label_selector = label_selector
        self._callback = callback
        self._registry_key = registry_key
        self._on_finished = on_finished
        self.build_name = build_name
        self.subscription: WatchSubscription | None = None

    def ensure(self, request: DeploymentRequest, app_id: str) -> ResourceHandle:
        return None

    def activate(self, request: DeploymentRequest, app_id: str) -> None:
        build_name = self.build_name

        def _callback(record: BuildRecord, close: Callable[[], None]) -> None:
            if build_name and record.name != build_name:
                return
            self._callback(record, close)

        key = self._registry_key or app_id

        def _finished(subscription: WatchSubscription) -> None:
            self._registry.discard(key, subscription)
            if self._on_finished is not None:
                self._on_finished(subscription)

        self.subscription = self._watcher.watch(
            self._label_selector, _callback, _finished
        )
        self._registry.register(key, self.subscription)
        if not self.subscription.is_alive():
            self._registry.discard(key, self.subscription)


class WatchingBuildStep(BuildWatchStep):
    """Build step that watches the submitted build run.

    After the inner submitter starts a build, a watch on the application's
    builds is opened and registered. Events for other build runs are not
    passed on once the submitted run's name is known.

    Args:
        submitter: Build submitter step
        watcher: Build watcher
        registry: Registry holding the subscription for ``app_id``
        label_selector: Selector for the application's builds
        callback: Completion callback
        registry_key: Key to register the subscription under (defaults to
            the application id)
        on_finished: Called after the subscription thread exits
    """

    name = "watched build"

    def __init__(
        self,
        submitter: BuildSubmitter,
        watcher: BuildWatcher,
        registry: WatchRegistry,
        label_selector: str,
        callback: BuildCallback,
        registry_key: str | None = None,
        on_finished: Callable[[WatchSubscription], None] | None = None,
    ) -> None:
        super().__init__(
            watcher,
            registry,
            label_selector,
            callback,
            registry_key=registry_key,
            on_finished=on_finished,
        )
        self._submitter = submitter

    def ensure(self, request: DeploymentRequest, app_id: str) -> dict[str, Any]:
        return self._submitter.ensure(request, app_id)

    def activate(self, request: DeploymentRequest, app_id: str) -> None:
        self._submitter.activate(request, app_id)
        self.build_name = self._submitter.build_name
        super().activate(request, app_id)
