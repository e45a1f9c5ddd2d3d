"""Probe runners: the periodic runner and the query loop.

Both take the process-wide stop signal (an ``anyio.Event``) rather than being
cancelled from outside, so each runner decides how shutdown reaches its
in-flight work:

- ``PeriodicRunner`` never forwards stop into a dispatched probe. The probe is
  bound only by its own tick deadline, and the runner drains it before
  evaluating its verdict.
- ``QueryLoop`` lets stop win: an in-flight query is cancelled and not
  recorded.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence

import anyio
import anyio.lowlevel
from anyio.abc import TaskGroup

from up.errors import QueryError
from up.metrics import OutcomeCounters, QueryMetrics
from up.models import QuerySpec
from up.verdict import evaluate

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[object]]
QueryProbe = Callable[[QuerySpec], Awaitable[list[str]]]


class PeriodicRunner:
    """Run one probe per period until stopped, then report its verdict.

    On every tick the probe runs in a fresh cancel scope whose deadline is the
    tick time plus one period. The scope is shielded from the surrounding
    cancellation: a new tick or a stop request never aborts an in-flight probe,
    only its own deadline does. An overrun counts as an error.

    At most one execution is in flight. A tick that finds the previous
    execution still running (it is at its deadline by then) waits for it
    before dispatching the next one.
    """

    def __init__(
        self,
        name: str,
        period: float,
        probe: Probe,
        counters: OutcomeCounters,
        threshold: float,
    ) -> None:
        self.name = name
        self._period = period
        self._probe = probe
        self._counters = counters
        self._threshold = threshold
        self._in_flight: anyio.Event | None = None

    async def run(self, stop: anyio.Event) -> float:
        """Tick until ``stop`` is set, drain, and evaluate.

        Returns:
            The success ratio.

        Raises:
            VerdictError: the success ratio is below the threshold, or nothing
                ran before stop.
        """
        async with anyio.create_task_group() as tg:
            next_tick = anyio.current_time() + self._period
            while True:
                with anyio.CancelScope(deadline=next_tick):
                    await stop.wait()
                if stop.is_set():
                    break

                await self._drain()
                if stop.is_set():
                    break
                self._dispatch(tg)
                next_tick = self._next_tick(next_tick)

            # Bounded by the execution's own deadline; a no-op if no tick ever fired.
            await self._drain()

        logger.info("%s stopped, evaluating results", self.name)
        return evaluate(self._counters.snapshot(), self._threshold)

    def _next_tick(self, scheduled: float) -> float:
        next_tick = scheduled + self._period
        now = anyio.current_time()
        if next_tick <= now:
            # Ticks missed while draining are dropped.
            next_tick += self._period * ((now - next_tick) // self._period + 1)
        return next_tick

    def _dispatch(self, tg: TaskGroup) -> None:
        scope = anyio.CancelScope(deadline=anyio.current_time() + self._period, shield=True)
        done = anyio.Event()
        self._in_flight = done
        tg.start_soon(self._execute, scope, done)

    async def _drain(self) -> None:
        if self._in_flight is not None:
            await self._in_flight.wait()

    async def _execute(self, scope: anyio.CancelScope, done: anyio.Event) -> None:
        started = anyio.current_time()
        try:
            with scope:
                await self._probe()
        except Exception as exc:
            self._counters.error()
            logger.error(
                "%s probe failed: duration=%.3fs err=%s",
                self.name,
                anyio.current_time() - started,
                exc,
            )
        else:
            if scope.cancelled_caught:
                self._counters.error()
                logger.error(
                    "%s probe failed: did not finish within its %.3fs deadline",
                    self.name,
                    self._period,
                )
            else:
                self._counters.success()
        finally:
            done.set()


class QueryLoop:
    """Sweep a list of named queries sequentially until stopped.

    Queries share the read endpoint, so they run one at a time, in list
    order. Stop is checked before every sweep and before every query, and
    cancels a query that is in flight. There is no verdict: failures are
    visible through the per-query metrics only.
    """

    def __init__(
        self,
        queries: Sequence[QuerySpec],
        execute: QueryProbe,
        metrics: QueryMetrics,
        initial_delay: float = 0.0,
    ) -> None:
        self._queries = tuple(queries)
        self._execute = execute
        self._metrics = metrics
        self._initial_delay = initial_delay

    async def run(self, stop: anyio.Event) -> None:
        logger.info("Waiting for initial delay before querying specified queries")
        with anyio.move_on_after(self._initial_delay):
            await stop.wait()
        if stop.is_set():
            return

        logger.info("Start querying for %d specified queries", len(self._queries))
        async with anyio.create_task_group() as tg:
            tg.start_soon(_cancel_when_set, stop, tg.cancel_scope)
            await self._sweep(stop)
            tg.cancel_scope.cancel()

    async def _sweep(self, stop: anyio.Event) -> None:
        while not stop.is_set():
            if not self._queries:
                await stop.wait()
                return
            for spec in self._queries:
                if stop.is_set():
                    return
                await self._run_query(spec)
            await anyio.lowlevel.checkpoint()

    async def _run_query(self, spec: QuerySpec) -> None:
        started = anyio.current_time()
        try:
            warnings = await self._execute(spec)
        except Exception as exc:
            duration = anyio.current_time() - started
            logger.info(
                "Failed to execute specified query: name=%s duration=%.3f warnings=%s err=%s",
                spec.name,
                duration,
                exc.warnings if isinstance(exc, QueryError) else [],
                exc,
            )
            self._metrics.record(spec.name, duration, ok=False)
        else:
            duration = anyio.current_time() - started
            logger.debug(
                "Successfully executed specified query: name=%s duration=%.3f warnings=%s",
                spec.name,
                duration,
                warnings,
            )
            self._metrics.record(spec.name, duration, ok=True)


async def _cancel_when_set(event: anyio.Event, scope: anyio.CancelScope) -> None:
    await event.wait()
    scope.cancel()
