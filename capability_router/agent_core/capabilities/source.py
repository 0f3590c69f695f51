"""Hot-reloadable capability document source.

``CapabilitySource`` owns one YAML capability file. It serves the last valid
``CapabilityDocument`` to readers and re-reads the file only when its
modification signature changes.

Reload protocol:

- Reading, parsing and validation happen outside the swap lock; the lock is
  held only while the cached reference and its file signature are replaced.
- Concurrent reload attempts are coalesced by ``_reload_lock`` with a
  double-check, so a burst of callers parses the file once.
- A failed reload leaves the previous document in place.

``start_watching`` runs a daemon thread that polls the file signature. A
change arms a debounce timer which is re-armed by every further change, so an
editor writing the file in several steps triggers a single reload. Each
watched reload emits a ``CapabilitiesReloadedEvent`` to subscribers.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from ..errors import CapabilityFileNotFoundError, ConfigurationInvalidError
from .models import CapabilityDocument
from .validator import CapabilityDocumentValidator

if TYPE_CHECKING:
    from .registry import CapabilityRegistry

logger = logging.getLogger(__name__)

_Signature = Tuple[int, int]


@dataclass(frozen=True)
class CapabilitiesReloadedEvent:
    """Emitted after every watched (or explicit) reload attempt."""

    file_path: str
    timestamp: datetime
    success: bool
    error: Optional[str] = None
    document_version: Optional[str] = None
    document: Optional[CapabilityDocument] = None


@dataclass
class ReloadStats:
    reload_count: int = 0
    failure_count: int = 0
    last_duration_seconds: float = 0.0
    last_error: Optional[str] = None
    last_success_at: Optional[datetime] = None


ReloadListener = Callable[[CapabilitiesReloadedEvent], Any]


@dataclass
class _WatchState:
    thread: Optional[threading.Thread] = None
    stop: threading.Event = field(default_factory=threading.Event)
    timer: Optional[threading.Timer] = None


class CapabilitySource:
    """
    Serve the capability document stored in a YAML file.

    Args:
        file_path: Path of the YAML capability file.
        throw_on_file_not_found: Raise ``CapabilityFileNotFoundError`` when the
            file is missing instead of serving an empty document. Fixed at
            construction.
        validate_schema: Run ``CapabilityDocumentValidator`` on every load.
        debounce_seconds: Quiet period after the last detected change before
            the watcher reloads.
        poll_interval_seconds: How often the watcher checks the file signature.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        *,
        throw_on_file_not_found: bool = False,
        validate_schema: bool = True,
        debounce_seconds: float = 0.3,
        poll_interval_seconds: float = 1.0,
        validator: Optional[CapabilityDocumentValidator] = None,
    ) -> None:
        self._path = Path(file_path)
        self._throw_on_file_not_found = throw_on_file_not_found
        self._validate_schema = validate_schema
        self._debounce = max(debounce_seconds, 0.0)
        self._poll_interval = max(poll_interval_seconds, 0.01)
        self._validator = validator or CapabilityDocumentValidator()

        self._swap_lock = threading.Lock()
        self._reload_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._document: Optional[CapabilityDocument] = None
        self._signature: Optional[_Signature] = None
        self._rejected_signature: Optional[_Signature] = None
        self._empty = CapabilityDocument.empty()

        self._listeners: Tuple[ReloadListener, ...] = ()
        self._watch = _WatchState()
        self.stats = ReloadStats()

    @property
    def file_path(self) -> str:
        return str(self._path)

    @property
    def current(self) -> Optional[CapabilityDocument]:
        """The cached document, without touching the file system."""
        return self._document

    # ------------------------------------------------------------------
    # loading
    # ------------------------------------------------------------------

    def load_capabilities(self) -> CapabilityDocument:
        """
        Return the current capability document.

        The cached document object is returned as-is while the file signature
        (mtime, size) is unchanged. Otherwise the file is re-read.

        A file that fails to parse or validate is rejected as a whole: the
        error is logged and recorded in ``stats`` and the previously loaded
        document (or the empty document, if none was loaded yet) is returned.
        The rejected file is not re-parsed until it changes again.

        Raises:
            CapabilityFileNotFoundError: If the file is missing and the source
                was built with ``throw_on_file_not_found=True``.
        """
        try:
            return self._load(force=False)
        except ConfigurationInvalidError as e:
            with self._swap_lock:
                self.stats.failure_count += 1
                self.stats.last_error = str(e)
                if self._document is None:
                    self._document = self._empty
                retained = self._document
            logger.error(
                "Capability document rejected; keeping version=%s; file=%s errors=%d",
                retained.version,
                self._path,
                len(e.errors),
            )
            return retained

    def _load(self, *, force: bool) -> CapabilityDocument:
        signature = self._stat()
        if signature is None:
            return self._missing()

        cached = self._document
        if not force and cached is not None and signature in (self._signature, self._rejected_signature):
            return cached

        with self._reload_lock:
            # Double-check: another caller may have reloaded while we waited.
            signature = self._stat()
            if signature is None:
                return self._missing()
            cached = self._document
            if not force and cached is not None and signature in (self._signature, self._rejected_signature):
                return cached

            try:
                document = self._read()
            except ConfigurationInvalidError:
                self._rejected_signature = signature
                raise
            with self._swap_lock:
                self._document = document
                self._signature = signature
        logger.info(
            "Loaded capability document; file=%s version=%s agents=%d",
            self._path,
            document.version,
            len(document.agents),
        )
        return document

    def _stat(self) -> Optional[_Signature]:
        try:
            st = self._path.stat()
        except FileNotFoundError:
            return None
        return st.st_mtime_ns, st.st_size

    def _missing(self) -> CapabilityDocument:
        if self._throw_on_file_not_found:
            raise CapabilityFileNotFoundError(str(self._path))
        logger.warning("Agent capabilities file not found: %s; serving empty document", self._path)
        with self._swap_lock:
            self._document = self._empty
            self._signature = None
        return self._empty

    def _read(self) -> CapabilityDocument:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise CapabilityFileNotFoundError(str(self._path)) from e
        return self.parse(text, file_path=str(self._path))

    def parse(self, text: str, *, file_path: str = "") -> CapabilityDocument:
        """Parse and validate YAML text into a ``CapabilityDocument``."""
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationInvalidError([f"yaml: {e}"], file_path=file_path) from e
        if raw is None:
            raw = {}

        if self._validate_schema:
            return self._validator.validate(raw, file_path=file_path)
        try:
            return CapabilityDocument.model_validate(raw)
        except ValidationError as e:
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise ConfigurationInvalidError(errors, file_path=file_path) from e

    @staticmethod
    def serialize(document: CapabilityDocument) -> str:
        """Dump a document back to YAML in the on-disk format."""
        payload = {
            "version": document.version,
            "agents": {
                name: entry.model_dump(mode="json", exclude_none=True)
                for name, entry in document.agents.items()
            },
        }
        return yaml.safe_dump(payload, default_flow_style=False, sort_keys=False)

    def reload(self, *, force: bool = False) -> CapabilitiesReloadedEvent:
        """
        Attempt a reload, record statistics and notify subscribers.

        Never raises for load failures; the failure is reported in the
        returned event and the previous document stays active.
        """
        started = time.perf_counter()
        try:
            document = self._load(force=force)
        except (ConfigurationInvalidError, CapabilityFileNotFoundError, OSError) as e:
            duration = time.perf_counter() - started
            error = str(e)
            with self._swap_lock:
                self.stats.reload_count += 1
                self.stats.failure_count += 1
                self.stats.last_duration_seconds = duration
                self.stats.last_error = error
            logger.error("Capability reload failed; file=%s error=%s", self._path, type(e).__name__)
            event = CapabilitiesReloadedEvent(
                file_path=str(self._path),
                timestamp=datetime.now(timezone.utc),
                success=False,
                error=error,
            )
        else:
            duration = time.perf_counter() - started
            now = datetime.now(timezone.utc)
            with self._swap_lock:
                self.stats.reload_count += 1
                self.stats.last_duration_seconds = duration
                self.stats.last_error = None
                self.stats.last_success_at = now
            event = CapabilitiesReloadedEvent(
                file_path=str(self._path),
                timestamp=now,
                success=True,
                document_version=document.version,
                document=document,
            )
        self._emit(event)
        return event

    # ------------------------------------------------------------------
    # events
    # ------------------------------------------------------------------

    def subscribe(self, listener: ReloadListener) -> Callable[[], None]:
        """
        Register a reload listener.

        Returns:
            A callable that removes the listener again.
        """
        with self._swap_lock:
            self._listeners = self._listeners + (listener,)

        def _unsubscribe() -> None:
            with self._swap_lock:
                self._listeners = tuple(x for x in self._listeners if x is not listener)

        return _unsubscribe

    def _emit(self, event: CapabilitiesReloadedEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.exception(
                    "Capability reload listener failed; listener=%s error=%s",
                    getattr(listener, "__qualname__", repr(listener)),
                    type(exc).__name__,
                )

    def bind(self, registry: "CapabilityRegistry", *, apply_now: bool = True) -> Callable[[], None]:
        """
        Keep ``registry`` in sync with this source.

        Besides applying every successful reload, the registry is given a
        refresher: when a capability's ``cache_expiration`` elapses, the file
        is re-read (``reload(force=True)``) and the capability is re-stamped
        instead of being dropped.

        Args:
            registry: The registry whose explicit capabilities are replaced on
                every successful reload.
            apply_now: Load the file immediately and apply it.

        Returns:
            A callable that unsubscribes and removes the refresher.
        """

        def _apply(event: CapabilitiesReloadedEvent) -> None:
            if event.success and event.document is not None:
                registry.replace_all(event.document.to_capabilities(), version=event.document.version)

        def _refresh() -> None:
            self.reload(force=True)

        if apply_now:
            document = self.load_capabilities()
            registry.replace_all(document.to_capabilities(), version=document.version)
        unsubscribe = self.subscribe(_apply)
        registry.set_refresher(_refresh)

        def _unbind() -> None:
            unsubscribe()
            registry.set_refresher(None)

        return _unbind

    # ------------------------------------------------------------------
    # watching
    # ------------------------------------------------------------------

    @property
    def is_watching(self) -> bool:
        thread = self._watch.thread
        return thread is not None and thread.is_alive()

    def start_watching(self) -> None:
        """Start the background watcher thread (no-op if already running)."""
        if self.is_watching:
            return
        # Compare against what was loaded so a change made before the thread
        # starts is still detected.
        baseline = self._signature if self._document is not None else self._stat()
        self._watch = _WatchState()
        thread = threading.Thread(
            target=self._watch_loop,
            args=(self._watch, baseline),
            name=f"capability-watcher:{self._path.name}",
            daemon=True,
        )
        self._watch.thread = thread
        thread.start()
        logger.info("Watching capability file; file=%s interval=%.2fs", self._path, self._poll_interval)

    def stop_watching(self, timeout: Optional[float] = 5.0) -> None:
        state = self._watch
        state.stop.set()
        with self._timer_lock:
            timer, state.timer = state.timer, None
        if timer is not None:
            timer.cancel()
        if state.thread is not None and state.thread is not threading.current_thread():
            state.thread.join(timeout)
        state.thread = None

    def _watch_loop(self, state: _WatchState, last_seen: Optional[_Signature]) -> None:
        while not state.stop.wait(self._poll_interval):
            current = self._stat()
            if current == last_seen:
                continue
            last_seen = current
            logger.debug("Capability file change detected; file=%s", self._path)
            self._arm_debounce(state)

    def _arm_debounce(self, state: _WatchState) -> None:
        timer = threading.Timer(self._debounce, self._on_debounced, args=(state,))
        timer.daemon = True
        with self._timer_lock:
            previous, state.timer = state.timer, timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _on_debounced(self, state: _WatchState) -> None:
        if state.stop.is_set():
            return
        self.reload()

    def __enter__(self) -> "CapabilitySource":
        self.start_watching()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop_watching()
