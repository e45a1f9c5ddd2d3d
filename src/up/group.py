"""Run group: start actors together, stop them all when the first one returns.

An actor is an (execute, interrupt) pair. ``execute`` is a coroutine function
that runs until its work is done or it is interrupted; ``interrupt`` is a
plain function that makes ``execute`` return soon. Interrupts receive the
error of the actor that ended first (or None) and must tolerate being called
after their own actor already returned.

Usage:
    group = RunGroup()
    group.add(partial(writer.run, stop), lambda _: stop.set(), name="writer")
    group.add(server.run, server.interrupt, name="http")
    await group.run()
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import anyio

logger = logging.getLogger(__name__)

Execute = Callable[[], Awaitable[object]]
Interrupt = Callable[[BaseException | None], None]


@dataclass(frozen=True, eq=False)
class Actor:
    execute: Execute
    interrupt: Interrupt
    name: str


@dataclass(frozen=True, eq=False)
class ActorResult:
    actor: Actor
    error: Exception | None


class RunGroup:
    """Supervise a set of independent long-running actors."""

    def __init__(self) -> None:
        self._actors: list[Actor] = []

    def add(self, execute: Execute, interrupt: Interrupt, *, name: str = "") -> None:
        """Register an actor. Actors start in registration order."""
        self._actors.append(Actor(execute, interrupt, name or f"actor-{len(self._actors)}"))

    @property
    def actors(self) -> list[Actor]:
        return list(self._actors)

    async def run(self) -> None:
        """Run all actors; when the first returns, interrupt the rest and wait.

        Raises:
            Exception: the first error, in completion order, returned by any
                actor. Further errors are logged.
        """
        if not self._actors:
            return

        results: list[ActorResult] = []
        first_done = anyio.Event()

        async with anyio.create_task_group() as tg:
            for actor in self._actors:
                tg.start_soon(self._run_actor, actor, results, first_done, name=actor.name)

            await first_done.wait()
            first = results[0]
            logger.debug("Actor %s returned first, interrupting the others", first.actor.name)
            for actor in self._actors:
                if actor is not first.actor:
                    actor.interrupt(first.error)

        errors = [result for result in results if result.error is not None]
        for result in errors[1:]:
            logger.error("Actor %s also failed: %s", result.actor.name, result.error)
        if errors:
            raise errors[0].error

    async def _run_actor(
        self, actor: Actor, results: list[ActorResult], first_done: anyio.Event
    ) -> None:
        try:
            await actor.execute()
        except Exception as exc:
            results.append(ActorResult(actor, exc))
        else:
            results.append(ActorResult(actor, None))
        first_done.set()
