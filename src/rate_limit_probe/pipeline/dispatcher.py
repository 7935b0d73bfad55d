"""
Bounded Dispatcher

Runs a request source through an HTTP transport with at most C attempts in
flight, observes completions in the order they arrive, and makes a single
first-wins decision about when and why the run stops.

Completion handlers run on the worker thread that performed the attempt, so
several of them can finish at the same time. Each completion is handled as one
step under the run's handling lock: straggler check, count, observer and stop
evaluation. Once the latch is set no observer call is in progress or can start.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Protocol, Set

from rate_limit_probe.core.errors import TransportError
from rate_limit_probe.io.schema import (
    HttpMethod,
    RequestDescriptor,
    ResponseObservation,
    RunResult,
    StopReason,
)

logger = logging.getLogger(__name__)

CompletionObserver = Callable[[ResponseObservation, int], None]


class Transport(Protocol):
    def send(self, method: HttpMethod, url: str) -> ResponseObservation: ...

    def close(self) -> None: ...

class RunCounters:
    """Completed-request total shared by all completion handlers."""

    def __init__(self):
        self._requests_completed = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        """Add one completion and return the new total."""
        with self._lock:
            self._requests_completed += 1
            return self._requests_completed

    @property
    def requests_completed(self) -> int:
        with self._lock:
            return self._requests_completed


class RunClock:
    """Fixed start instant; elapsed time is always read relative to it."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.start = clock()

    def elapsed(self) -> float:
        return self._clock() - self.start


@dataclass(frozen=True)
class StopDecision:
    """Terminal state of a run. ``reason`` is None for a transport failure."""

    reason: Optional[StopReason]
    elapsed: float
    requests_completed: int
    headers: Optional[Dict[str, str]] = None
    error: Optional[TransportError] = None


class StopLatch:
    """Single-shot holder for the run's StopDecision; the first caller wins."""

    def __init__(self):
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._decision: Optional[StopDecision] = None

    def try_decide(self, make_decision: Callable[[], StopDecision]) -> bool:
        """
        Record a decision if none exists yet.

        ``make_decision`` is called under the latch lock so the values it
        captures belong to the winning moment. Returns False for a late caller.
        """
        with self._lock:
            if self._decision is not None:
                return False
            self._decision = make_decision()
        self._event.set()
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    @property
    def decision(self) -> Optional[StopDecision]:
        return self._decision


@dataclass
class _RunState:
    counters: RunCounters
    clock: RunClock
    latch: StopLatch
    slots: threading.BoundedSemaphore
    handling: threading.Lock = field(default_factory=threading.Lock)


class BoundedDispatcher:
    """Sliding-window dispatcher with a first-wins stop decision."""

    def __init__(
        self,
        transport: Transport,
        concurrency_limit: int,
        time_budget: float,
        max_requests: int,
        on_completion: Optional[CompletionObserver] = None,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 0.05,
    ):
        """
        Args:
            transport: Object exposing ``send(method, url) -> ResponseObservation``
            concurrency_limit: Maximum attempts in flight (caller validates >= 1)
            time_budget: Seconds after which a completion signals TIME_EXPIRED
            max_requests: Completion count that signals COUNT_EXHAUSTED
            on_completion: Optional observer called with each accepted completion
            clock: Monotonic time source
            poll_interval: How often waiting loops re-check the stop latch
        """
        self.transport = transport
        self.concurrency_limit = concurrency_limit
        self.time_budget = time_budget
        self.max_requests = max_requests
        self.on_completion = on_completion
        self._clock = clock
        self.poll_interval = poll_interval

    def run(self, source: Iterable[RequestDescriptor]) -> RunResult:
        """
        Dispatch the source until a stop decision is made.

        Returns:
            RunResult: Values captured when the winning decision was made

        Raises:
            TransportError: If an attempt failed before any normal stop decision
        """
        state = _RunState(
            counters=RunCounters(),
            clock=RunClock(self._clock),
            latch=StopLatch(),
            slots=threading.BoundedSemaphore(self.concurrency_limit),
        )
        logger.info(
            f"Dispatch started: concurrency={self.concurrency_limit} "
            f"time_budget={self.time_budget}s max_requests={self.max_requests}"
        )

        executor = ThreadPoolExecutor(
            max_workers=self.concurrency_limit, thread_name_prefix="probe-attempt"
        )
        pending: Set[Future] = set()
        try:
            for descriptor in source:
                if not self._acquire_slot(state):
                    break
                if state.latch.is_set():
                    state.slots.release()
                    break
                pending.add(executor.submit(self._attempt, descriptor, state))
                pending = self._reap(pending)
            self._await_decision(state, pending)
        finally:
            # Stragglers finish on their own; nothing waits for them.
            executor.shutdown(wait=False, cancel_futures=True)

        decision = state.latch.decision
        if decision.error is not None:
            raise TransportError(
                str(decision.error),
                elapsed=decision.elapsed,
                requests_completed=decision.requests_completed,
            ) from decision.error

        return RunResult(
            stop_reason=decision.reason,
            elapsed=decision.elapsed,
            requests_completed=decision.requests_completed,
            rate_limit_headers=decision.headers,
        )

    def _acquire_slot(self, state: _RunState) -> bool:
        while not state.slots.acquire(timeout=self.poll_interval):
            if state.latch.is_set():
                return False
        return True

    def _reap(self, pending: Set[Future]) -> Set[Future]:
        """Drop finished futures, re-raising anything a worker did not handle."""
        still_running = set()
        for future in pending:
            if future.done():
                future.result()
            else:
                still_running.add(future)
        return still_running

    def _await_decision(self, state: _RunState, pending: Set[Future]) -> None:
        while not state.latch.wait(self.poll_interval):
            pending = self._reap(pending)
            if not pending:
                # Source ran dry below max_requests; nothing left to decide on.
                completed = state.counters.requests_completed
                state.latch.try_decide(
                    lambda: StopDecision(
                        reason=StopReason.COUNT_EXHAUSTED,
                        elapsed=state.clock.elapsed(),
                        requests_completed=completed,
                    )
                )
                logger.info(f"Request source exhausted after {completed} completions")
                return

    def _attempt(self, descriptor: RequestDescriptor, state: _RunState) -> None:
        try:
            try:
                observation = self.transport.send(descriptor.method, descriptor.url)
            except Exception as e:
                self._on_failure(descriptor, e, state)
                return
            self._on_complete(observation, state)
        finally:
            state.slots.release()

    def _on_complete(self, observation: ResponseObservation, state: _RunState) -> None:
        with state.handling:
            self._handle_completion(observation, state)

    def _handle_completion(self, observation: ResponseObservation, state: _RunState) -> None:
        if state.latch.is_set():
            logger.debug(f"Ignoring straggler completion (status {observation.status_code})")
            return

        completed = state.counters.increment()
        if self.on_completion:
            try:
                self.on_completion(observation, completed)
            except Exception:
                logger.exception("Completion observer failed")

        reason = self._evaluate(observation, completed, state.clock)
        if reason is None:
            return

        headers = dict(observation.headers) if reason is StopReason.RATE_LIMITED else None
        won = state.latch.try_decide(
            lambda: StopDecision(
                reason=reason,
                elapsed=state.clock.elapsed(),
                requests_completed=completed,
                headers=headers,
            )
        )
        if won:
            logger.info(f"Stop decision: {reason.value} after {completed} completed requests")
        else:
            logger.debug(f"Late stop signal {reason.value} ignored")

    def _evaluate(
        self, observation: ResponseObservation, completed: int, clock: RunClock
    ) -> Optional[StopReason]:
        if observation.is_rate_limited:
            return StopReason.RATE_LIMITED
        if clock.elapsed() > self.time_budget:
            return StopReason.TIME_EXPIRED
        if completed >= self.max_requests:
            return StopReason.COUNT_EXHAUSTED
        return None

    def _on_failure(
        self, descriptor: RequestDescriptor, exc: Exception, state: _RunState
    ) -> None:
        if isinstance(exc, TransportError):
            error = exc
        else:
            error = TransportError(f"{type(exc).__name__}: {exc}")
            error.__cause__ = exc

        with state.handling:
            won = state.latch.try_decide(
                lambda: StopDecision(
                    reason=None,
                    elapsed=state.clock.elapsed(),
                    requests_completed=state.counters.requests_completed,
                    error=error,
                )
            )
        if won:
            logger.error(
                f"Transport failure on {descriptor.method.value} {descriptor.url}: {error}"
            )
        else:
            logger.debug(f"Ignoring straggler transport failure: {error}")


def run(
    source: Iterable[RequestDescriptor],
    transport: Transport,
    concurrency_limit: int,
    time_budget: float,
    max_requests: int,
    on_completion: Optional[CompletionObserver] = None,
) -> RunResult:
    """Run ``source`` through ``transport`` and return the run's outcome."""
    dispatcher = BoundedDispatcher(
        transport=transport,
        concurrency_limit=concurrency_limit,
        time_budget=time_budget,
        max_requests=max_requests,
        on_completion=on_completion,
    )
    return dispatcher.run(source)
