"""
=============================================================================
STAGE INVOCATION
=============================================================================

How one stage of the chain is called, and how it hands control onward.

Every stage gets a `proceed` callable:

    def stage(request, response, proceed):
        ...
        proceed()            # continue with the next stage
        proceed(error)       # skip to the next error-handling stage

and must do exactly ONE of three things before it returns:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. respond           response.send(...) / render / redirect        │
    │   2. proceed()         pass control on                               │
    │   3. proceed(error)    pass an error on                              │
    │                                                                      │
    │   none of them   ──►   StalledRequestError (the request would hang) │
    │   proceed twice  ──►   MiddlewareContractError                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SYNC AND ASYNC STAGES
=============================================================================

proceed() does not run the rest of the chain immediately. It returns a
Continuation, an awaitable that runs the rest of the chain when awaited.

    # plain function: proceed() and return, the chain runs afterwards
    def set_cookie(request, response, proceed):
        response.set_cookie("seen", 1)
        proceed()

    # coroutine: await proceed() to run code after the later stages
    async def timer(request, response, proceed):
        start = time.perf_counter()
        await proceed()
        print(response.status, time.perf_counter() - start)

If the stage never awaits the continuation, run_stage() awaits it once
the stage returns. Either way the rest of the chain runs exactly once.

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "Why not let proceed() run the next stage directly?"
A: "Then a plain function stage would have to block until the whole
   downstream chain finished, and a coroutine stage could not await it.
   Returning a lazy awaitable serves both."

Q: "What happens when a stage forgets to call proceed?"
A: "With a callback-style framework the client waits forever. Here the
   stage returns with nothing sent and nothing forwarded, which run_stage
   can see, so it raises StalledRequestError and the client gets a 500."

=============================================================================
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


# forward(None) continues normal flow, forward(error) continues error flow
Forward = Callable[[Optional[BaseException]], Awaitable[None]]


class MiddlewareContractError(RuntimeError):
    """A stage broke the proceed protocol (for example, called it twice)."""


class StalledRequestError(RuntimeError):
    """A stage returned without responding and without calling proceed."""

    def __init__(self, stage_name: str):
        self.stage_name = stage_name
        super().__init__(
            f"Stage {stage_name!r} neither sent a response nor called proceed()"
        )


class Continuation:
    """
    The rest of the chain, waiting to be run.

    Awaitable exactly once. `started` tells run_stage() whether the stage
    already awaited it.
    """

    def __init__(self, factory: Callable[[], Awaitable[None]]):
        self._factory = factory
        self.started = False

    def __await__(self):
        if self.started:
            raise MiddlewareContractError("The result of proceed() was awaited twice")
        self.started = True
        return self._factory().__await__()


class Proceed:
    """The `proceed` callable handed to one stage."""

    def __init__(self, stage_name: str, forward: Forward):
        self._stage_name = stage_name
        self._forward = forward
        self._continuation: Optional[Continuation] = None
        self.error: Optional[BaseException] = None

    @property
    def called(self) -> bool:
        return self._continuation is not None

    def __call__(self, error: Optional[BaseException] = None) -> Continuation:
        if self._continuation is not None:
            raise MiddlewareContractError(
                f"proceed() called more than once by {self._stage_name!r}"
            )
        self.error = error
        self._continuation = Continuation(lambda: self._forward(error))
        return self._continuation

    @property
    def pending(self) -> bool:
        """Called, but the continuation has not run yet."""
        return self._continuation is not None and not self._continuation.started

    async def settle(self) -> None:
        """Run the continuation if the stage did not await it itself."""
        if self.pending:
            await self._continuation


async def run_stage(
    name: str,
    invoke: Callable[[Proceed], Any],
    forward: Forward,
    response: Any,
) -> None:
    """
    Run one stage and enforce the proceed protocol.

    `invoke(proceed)` calls the stage with whatever arguments it takes; its
    result is awaited when it is awaitable.

    Exceptions raised by the stage become proceed(error). An exception
    raised after the stage already ran the rest of the chain (while
    awaiting its continuation, or after it) cannot be forwarded a second
    time, so it propagates to the request boundary.
    """
    proceed = Proceed(name, forward)

    try:
        result = invoke(proceed)
        if inspect.isawaitable(result):
            await result
    except (MiddlewareContractError, StalledRequestError):
        raise
    except Exception as exc:
        if proceed.called and not proceed.pending:
            raise
        logger.debug(f"Stage {name!r} raised {type(exc).__name__}, forwarding as error")
        # A stage that called proceed() and then raised: the error wins
        await forward(exc)
        return

    await proceed.settle()

    if not proceed.called and not getattr(response, "finished", False):
        raise StalledRequestError(name)
