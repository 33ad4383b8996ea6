"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

The middleware protocol and the pipeline that chains stages together.
Implements the Chain of Responsibility design pattern.

=============================================================================
CHAIN OF RESPONSIBILITY PATTERN
=============================================================================

Each stage can either answer the request or pass it on. The application
is one long chain:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   request                                                            │
    │      │                                                               │
    │      ▼                                                               │
    │   ┌─────────┐   ┌─────────┐   ┌─────────┐   ┌─────────┐   ┌──────┐ │
    │   │ Logging │──►│ Static  │──►│ Cookies │──►│  Body   │──►│Router│ │
    │   └─────────┘   └────┬────┘   └─────────┘   └─────────┘   └──┬───┘ │
    │        ▲             │                                       │     │
    │        │        file found:                             no route:  │
    │        │        respond, stop                           404        │
    │        │                                                             │
    │   logs status and time once everything after it has run             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
TWO KINDS OF STAGE
=============================================================================

    Middleware          (request, response, proceed)
    ErrorMiddleware     (error, request, response, proceed)

While no error is in flight only Middleware runs. After proceed(error),
or an exception, only ErrorMiddleware runs, until one of them either
responds or calls proceed() with no argument, which resumes normal flow.

    ┌──────┐  ┌──────┐  ┌──────┐  ┌──────┐  ┌──────┐
    │ MW A │─►│ MW B │  │ ERR  │  │ MW C │  │ ERR2 │
    └──────┘  └──┬───┘  └──────┘  └──────┘  └──────┘
                 │ proceed(e)        ▲
                 └───────────────────┼─► ERR runs, MW C is skipped
                                     │
                      ERR calls proceed() ──► MW C runs

=============================================================================
INTERVIEW INSIGHT
=============================================================================

Q: "What design pattern would you use for middleware?"
A: "Chain of Responsibility. Each stage handles the request or delegates
   to the next one. Stages stay small and the order is configuration."

Q: "Why are error handlers part of the same list?"
A: "Position matters. An error handler only sees errors from stages
   registered before it, so you can put a specific handler right after
   the stage that raises and a catch-all at the end."

=============================================================================
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from ..http.chain import Proceed, run_stage
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The end of the chain: what runs when every stage passed control on
FinalHandler = Callable[[HTTPRequest, HTTPResponse], Awaitable[None]]
FinalErrorHandler = Callable[[BaseException, HTTPRequest, HTTPResponse], Awaitable[None]]

# The callable MiddlewarePipeline.wrap() returns
Dispatch = Callable[[HTTPRequest, HTTPResponse], Awaitable[None]]


class Middleware(ABC):
    """
    Abstract base class for middleware.

    =========================================================================
    THE MIDDLEWARE CONTRACT
    =========================================================================

        class MyMiddleware(Middleware):
            async def __call__(self, request, response, proceed):
                # ═══════════════════════════════════════════════════════
                # PRE-PROCESSING
                # ═══════════════════════════════════════════════════════
                if not self.is_valid(request):
                    response.text("Invalid", status=400)   # short-circuit
                    return

                # ═══════════════════════════════════════════════════════
                # CONTINUE THE CHAIN
                # ═══════════════════════════════════════════════════════
                await proceed()

                # ═══════════════════════════════════════════════════════
                # POST-PROCESSING (later stages have run)
                # ═══════════════════════════════════════════════════════
                logger.info(f"answered {response.status}")

    __call__ may be a plain method or a coroutine. Exactly one of
    respond / proceed() / proceed(error) per call.

    =========================================================================
    """

    is_error_handler = False

    @abstractmethod
    def __call__(self, request: HTTPRequest, response: HTTPResponse, proceed: Proceed) -> Any:
        """Handle the request, then respond or call proceed."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


class ErrorMiddleware(ABC):
    """
    A stage that only runs while an error is in flight.

        class JsonErrors(ErrorMiddleware):
            def __call__(self, error, request, response, proceed):
                if request.path.startswith("/api/"):
                    response.json({"error": str(error)}, status=500)
                else:
                    proceed(error)
    """

    is_error_handler = True

    @abstractmethod
    def __call__(
        self,
        error: BaseException,
        request: HTTPRequest,
        response: HTTPResponse,
        proceed: Proceed,
    ) -> Any:
        """Handle the error, or pass it (or a new one) on."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


# =============================================================================
# FUNCTION MIDDLEWARE
# =============================================================================

class FunctionMiddleware(Middleware):
    """
    Wraps a plain function or coroutine function as middleware.

        def add_header(request, response, proceed):
            response.set_header("X-Powered-By", "pyhttpapp")
            proceed()

        app.use(add_header)          # wrapped automatically
    """

    def __init__(self, func: Callable[..., Any], name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)

    def __call__(self, request, response, proceed):
        return self._func(request, response, proceed)

    @property
    def name(self) -> str:
        return self._name


class FunctionErrorMiddleware(ErrorMiddleware):
    """Wraps a four-argument function as error middleware."""

    def __init__(self, func: Callable[..., Any], name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)

    def __call__(self, error, request, response, proceed):
        return self._func(error, request, response, proceed)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(func: Callable[..., Any]) -> FunctionMiddleware:
    """Decorator: turn a (request, response, proceed) function into middleware."""
    return FunctionMiddleware(func)


def error_middleware(func: Callable[..., Any]) -> FunctionErrorMiddleware:
    """Decorator: turn an (error, request, response, proceed) function into error middleware."""
    return FunctionErrorMiddleware(func)


def as_stage(stage: Any) -> Any:
    """
    Accept a Middleware, an ErrorMiddleware, or a plain callable.

    Plain callables are classified by how many positional parameters they
    take: four means error middleware, anything else normal middleware.
    """
    if isinstance(stage, (Middleware, ErrorMiddleware)):
        return stage
    if not callable(stage):
        raise TypeError(f"Middleware must be callable, got {type(stage).__name__}")

    try:
        params = [
            p for p in inspect.signature(stage).parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
    except (TypeError, ValueError):
        params = []

    if len(params) == 4:
        return FunctionErrorMiddleware(stage)
    return FunctionMiddleware(stage)


class MiddlewarePipeline:
    """
    An ordered list of stages, turned into one dispatch coroutine by wrap().

    =========================================================================
    USAGE
    =========================================================================

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        pipeline.add(StaticFilesMiddleware("public"))

        dispatch = pipeline.wrap(not_found, default_error_handler)
        await dispatch(request, response)

    wrap() takes a snapshot. Stages added to the pipeline afterwards do
    not affect an already wrapped dispatch.

    =========================================================================
    """

    def __init__(self):
        self._middleware: List[Any] = []

    def add(self, middleware: Any) -> "MiddlewarePipeline":
        """Append one stage. First added runs first."""
        stage = as_stage(middleware)
        self._middleware.append(stage)
        logger.debug(f"Added middleware: {stage.name}")
        return self

    def use(self, *middleware: Any) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, final: FinalHandler, final_error: FinalErrorHandler) -> Dispatch:
        """
        Build the dispatch coroutine.

        =====================================================================
        HOW DISPATCH WALKS THE LIST
        =====================================================================

            dispatch(index=0, error=None)
                │
                ├── skip stages of the wrong kind for the current flow
                │
                ├── past the end?  error is None → final(request, response)
                │                  otherwise     → final_error(error, ...)
                │
                └── run_stage(stage) with
                        forward(e) = dispatch(index + 1, e)

        Each forward closure captures its own index, so a stage can only
        continue from the position right after itself.

        =====================================================================
        """
        stages: Tuple[Any, ...] = tuple(self._middleware)

        async def dispatch(index: int, error: Optional[BaseException],
                           request: HTTPRequest, response: HTTPResponse) -> None:
            want_error_handler = error is not None
            while index < len(stages) and stages[index].is_error_handler != want_error_handler:
                index += 1

            if index >= len(stages):
                if error is None:
                    await final(request, response)
                else:
                    await final_error(error, request, response)
                return

            stage = stages[index]

            async def forward(next_error: Optional[BaseException]) -> None:
                await dispatch(index + 1, next_error, request, response)

            def invoke(proceed: Proceed) -> Any:
                if error is None:
                    return stage(request, response, proceed)
                return stage(error, request, response, proceed)

            await run_stage(stage.name, invoke, forward, response)

        async def chain(request: HTTPRequest, response: HTTPResponse) -> None:
            await dispatch(0, None, request, response)

        return chain

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
