"""Gate resolver: decides between remote content and the native UI.

The resolver combines the sticky cache, the activation-date gate, the
reachability probe, the descriptor fetch and the HEAD validation into a
single ``Decision``.  Every failure degrades to ``NATIVE_FALLBACK``; there
is no error path out of the public entry points.

Entry points over one pipeline:

- ``await resolver.resolve(policy)``: for callers already on an event loop.
- ``resolver.resolve_async(policy, callback)``: fire-and-forget; runs on the
  resolver's background event loop and returns a
  ``concurrent.futures.Future``.
- ``resolver.resolve_blocking(timeout)``: for the one synchronous startup
  decision.  The pipeline task is raced against a timer with
  ``asyncio.wait``; when the timer wins the caller gets ``NATIVE_FALLBACK``
  while the pipeline keeps running and still commits a validated URL for
  the next launch.

Usage:
    resolver = GateResolver(cache, expiry_gate, probe, fetcher, validator)

    # Startup, before the UI is composed
    decision = resolver.resolve_blocking(timeout=5.0)
    if decision.is_remote:
        show_remote(decision.url)

    # Native screen appeared
    resolver.resolve_async(callback=lambda d: None)
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import math
import threading
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from content_gate.cache import ResolutionCache
from content_gate.config import TimeoutConfig
from content_gate.descriptor import DescriptorFetcher
from content_gate.expiry import ExpiryGate
from content_gate.logging import ContextAdapter, get_logger
from content_gate.reachability import ReachabilityProbe
from content_gate.validator import PathValidator

logger = get_logger(__name__)

T = TypeVar("T")

# Extra time the blocking caller waits for the race coroutine itself to
# report back from the loop thread after the timer has fired.
JOIN_GRACE_SECONDS: float = 0.25

DEFAULT_BLOCKING_TIMEOUT: float = TimeoutConfig().blocking


def _usable_timeout(timeout: float) -> float:
    """Return *timeout*, or the default blocking timeout if it cannot be waited on."""
    if math.isfinite(timeout) and timeout > 0:
        return timeout
    logger.warning(
        "[CONTENT_GATE] Ignoring unusable timeout %r, using %.1fs",
        timeout,
        DEFAULT_BLOCKING_TIMEOUT,
    )
    return DEFAULT_BLOCKING_TIMEOUT


class DecisionKind(Enum):
    """Binary outcome of the gate."""

    RESOLVED = "resolved"
    NATIVE_FALLBACK = "native_fallback"


class DecisionSource(Enum):
    """Which step produced a decision."""

    STICKY = "sticky"
    EXPIRY = "expiry"
    POLICY = "policy"
    NETWORK = "network"
    TIMEOUT = "timeout"
    ERROR = "error"


class ResolutionState(Enum):
    """Observable state of the resolver."""

    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    NATIVE_FALLBACK = "native_fallback"


class ResolutionPolicy(Enum):
    """Call-site policy for step 3 of the decision algorithm.

    STARTUP:
        The blocking decision made before the UI is composed. Skips the
        network when the state says the content is known to be absent,
        otherwise runs fetch + validate with the short startup deadline.
    OPPORTUNISTIC:
        The background check made once the native UI is showing. Attempts
        the round trip when the network is reachable, a URL is cached, or
        the device is not a tablet.
    """

    STARTUP = "startup"
    OPPORTUNISTIC = "opportunistic"


@dataclass(frozen=True)
class Decision:
    """Gate decision.

    Attributes:
        kind: Remote content or native UI.
        url: Content URL when ``kind`` is ``RESOLVED``.
        source: Step that produced the decision.
    """

    kind: DecisionKind
    url: str | None = None
    source: DecisionSource = DecisionSource.POLICY

    @classmethod
    def resolved(cls, url: str, source: DecisionSource) -> Decision:
        return cls(kind=DecisionKind.RESOLVED, url=url, source=source)

    @classmethod
    def native(cls, source: DecisionSource) -> Decision:
        return cls(kind=DecisionKind.NATIVE_FALLBACK, source=source)

    @property
    def is_remote(self) -> bool:
        return self.kind is DecisionKind.RESOLVED


class _LoopThread:
    """Background asyncio event loop on a daemon thread, started lazily."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    def _ensure_started(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=self._run, args=(loop,), name=self._name, daemon=True
                )
                thread.start()
                self._loop = loop
                self._thread = thread
            return self._loop

    @staticmethod
    def _run(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    def submit(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        loop = self._ensure_started()
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def is_current(self) -> bool:
        return self._thread is not None and self._thread is threading.current_thread()

    @property
    def running(self) -> bool:
        return self._loop is not None

    def stop(self, timeout: float = 1.0) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None
        if loop is None or thread is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not threading.current_thread():
            thread.join(timeout)


class GateResolver:
    """Orchestrates the gate decision.

    All collaborators are injected so tests can substitute fakes for the
    network, the clock and the random shard selection.

    Thread-safety contract:
        ``resolve_async`` and ``resolve_blocking`` may be called from any
        thread other than the resolver's own loop thread.  The only shared
        mutable resource is the ``ResolutionCache``, which serializes its
        own writes.  ``state`` is guarded by ``_state_lock``.

    Args:
        cache: Owner of the persisted gate state.
        expiry_gate: Activation-date check.
        probe: Network reachability probe.
        fetcher: Descriptor fetcher.
        validator: Candidate URL validator.
        timeouts: Deadlines for each suspension point.
        clock: Returns the current time for the activation check.
        is_tablet: Device-class predicate for the opportunistic policy.
    """

    def __init__(
        self,
        cache: ResolutionCache,
        expiry_gate: ExpiryGate,
        probe: ReachabilityProbe,
        fetcher: DescriptorFetcher,
        validator: PathValidator,
        timeouts: TimeoutConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        is_tablet: Callable[[], bool] | None = None,
    ) -> None:
        self._cache = cache
        self._expiry_gate = expiry_gate
        self._probe = probe
        self._fetcher = fetcher
        self._validator = validator
        self._timeouts = timeouts or TimeoutConfig()
        self._clock: Callable[[], datetime] = clock or datetime.now
        self._is_tablet: Callable[[], bool] = is_tablet or (lambda: False)
        self._state = ResolutionState.UNRESOLVED
        self._state_lock = threading.Lock()
        self._loop_thread = _LoopThread(name="content-gate-resolver")
        # Strong references to pipelines that outlive a timed-out caller.
        self._background_tasks: set[asyncio.Task[Decision]] = set()

    @property
    def state(self) -> ResolutionState:
        """Current resolution state."""
        with self._state_lock:
            return self._state

    def _set_state(self, state: ResolutionState) -> None:
        with self._state_lock:
            self._state = state

    def material_source(self) -> str | None:
        """Return the sticky content URL the host should display, if any."""
        return self._cache.has_sticky()

    async def resolve(self, policy: ResolutionPolicy = ResolutionPolicy.OPPORTUNISTIC) -> Decision:
        """Run the decision pipeline to completion.

        Args:
            policy: Call-site policy for the network step.

        Returns:
            The gate decision. Never raises except on cancellation.
        """
        log = logger.with_context(call_site=policy.value)
        self._set_state(ResolutionState.RESOLVING)
        try:
            decision = await self._decide(policy, log)
        except asyncio.CancelledError:
            self._set_state(ResolutionState.NATIVE_FALLBACK)
            raise
        except Exception as e:
            # INTENTIONAL BROAD CATCH: the worst outcome must be the native UI.
            log.warning(
                "[CONTENT_GATE] Resolution failed with unexpected error: %s: %s",
                type(e).__name__,
                e,
            )
            decision = Decision.native(DecisionSource.ERROR)

        self._set_state(
            ResolutionState.RESOLVED if decision.is_remote else ResolutionState.NATIVE_FALLBACK
        )
        log.info(
            "[CONTENT_GATE] Decision %s (%s)",
            decision.kind.value,
            decision.source.value,
            extra={"decision": decision.kind.value},
        )
        return decision

    async def _decide(self, policy: ResolutionPolicy, log: ContextAdapter) -> Decision:
        sticky = self._cache.has_sticky()
        if sticky:
            return Decision.resolved(sticky, DecisionSource.STICKY)

        if self._expiry_gate.is_before_activation(self._clock()):
            log.debug("Before activation date", extra={"diagnostic_tag": "resolver"})
            return Decision.native(DecisionSource.EXPIRY)

        if policy is ResolutionPolicy.STARTUP:
            if self._cache.get().up_to_date_no_content:
                log.debug("State marked up to date", extra={"diagnostic_tag": "resolver"})
                return Decision.native(DecisionSource.POLICY)
            validation_deadline = self._timeouts.startup_validation
        else:
            if not await self._should_attempt():
                return Decision.native(DecisionSource.POLICY)
            validation_deadline = self._timeouts.validation

        return await self._round_trip(validation_deadline, log)

    async def _should_attempt(self) -> bool:
        # Reachability always runs first: it records the first-launch flag.
        reachable = await asyncio.to_thread(self._probe.is_network_usable)
        return reachable or self._cache.has_sticky() is not None or not self._is_tablet()

    async def _round_trip(self, validation_deadline: float, log: ContextAdapter) -> Decision:
        candidate = await self._fetcher.fetch_candidate(self._timeouts.fetch)
        if candidate is None:
            return Decision.native(DecisionSource.NETWORK)

        if not await self._validator.validate(candidate, validation_deadline):
            return Decision.native(DecisionSource.NETWORK)

        # The flush may wait on the state file lock; keep it off the loop.
        committed = await asyncio.to_thread(self._cache.commit, candidate)
        log.debug(
            "Round trip succeeded",
            extra={"diagnostic_tag": "resolver", "url": committed},
        )
        return Decision.resolved(committed, DecisionSource.NETWORK)

    async def resolve_with_timeout(
        self,
        timeout: float,
        policy: ResolutionPolicy = ResolutionPolicy.STARTUP,
    ) -> Decision:
        """Race the pipeline against a timer.

        The pipeline runs as its own task and is not cancelled when the
        timer wins, so a late success is still committed to the cache.

        Args:
            timeout: Seconds to wait for the pipeline.
            policy: Call-site policy for the network step.

        Returns:
            The pipeline's decision, or ``NATIVE_FALLBACK`` on timeout.
        """
        timeout = _usable_timeout(timeout)
        task = asyncio.ensure_future(self.resolve(policy))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if task not in done:
            logger.warning(
                "[CONTENT_GATE] Resolution timed out after %.1fs, using native UI",
                timeout,
                extra={"call_site": policy.value},
            )
            return Decision.native(DecisionSource.TIMEOUT)
        if task.cancelled():
            return Decision.native(DecisionSource.ERROR)
        return task.result()

    def resolve_async(
        self,
        policy: ResolutionPolicy = ResolutionPolicy.OPPORTUNISTIC,
        callback: Callable[[Decision], None] | None = None,
    ) -> concurrent.futures.Future[Decision]:
        """Schedule the pipeline on the background loop.

        Args:
            policy: Call-site policy for the network step.
            callback: Optional callable receiving the decision. It runs on
                the resolver's loop thread; exceptions it raises are logged.

        Returns:
            Future completed with the decision.
        """
        future = self._loop_thread.submit(self.resolve(policy))
        if callback is not None:
            future.add_done_callback(lambda f: self._deliver(f, callback))
        return future

    @staticmethod
    def _deliver(
        future: concurrent.futures.Future[Decision],
        callback: Callable[[Decision], None],
    ) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning("[CONTENT_GATE] Async resolution did not complete: %s", error)
            return
        try:
            callback(future.result())
        except Exception as e:
            logger.warning(
                "[CONTENT_GATE] Decision callback raised %s: %s",
                type(e).__name__,
                e,
            )

    def resolve_blocking(
        self,
        timeout: float | None = None,
        policy: ResolutionPolicy = ResolutionPolicy.STARTUP,
    ) -> Decision:
        """Block the calling thread until a decision or the timeout.

        Returns within ``timeout`` plus a small join grace regardless of
        network latency.

        Args:
            timeout: Seconds to wait. Defaults to the configured blocking timeout.
            policy: Call-site policy for the network step.

        Returns:
            The gate decision; ``NATIVE_FALLBACK`` on timeout.

        Raises:
            RuntimeError: If called from the resolver's own loop thread,
                which would deadlock.
        """
        if self._loop_thread.is_current():
            msg = "resolve_blocking() cannot be called from the resolver loop thread"
            raise RuntimeError(msg)

        timeout = _usable_timeout(self._timeouts.blocking if timeout is None else timeout)
        future = self._loop_thread.submit(self.resolve_with_timeout(timeout, policy))
        try:
            return future.result(timeout=timeout + JOIN_GRACE_SECONDS)
        except concurrent.futures.TimeoutError:
            future.cancel()
            logger.warning(
                "[CONTENT_GATE] Resolver loop did not answer within %.1fs, using native UI",
                timeout,
            )
            return Decision.native(DecisionSource.TIMEOUT)
        except concurrent.futures.CancelledError:
            return Decision.native(DecisionSource.ERROR)

    def should_show_remote_content(self, timeout: float | None = None) -> bool:
        """Boolean form of the startup decision."""
        return self.resolve_blocking(timeout).is_remote

    def close(self) -> None:
        """Stop the background loop. Pipelines still running are abandoned."""
        self._loop_thread.stop()

    def __enter__(self) -> GateResolver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
