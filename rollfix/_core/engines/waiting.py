"""
Waiting for a condition on one specific object.

The engine subscribes to the object's watch-stream (filtered server-side
to that object only), evaluates a predicate on every arriving snapshot,
and races it against a deadline: whichever comes first decides the outcome.

Every wait is self-contained: exactly one subscription and one deadline timer
per call, both released before the call returns -- with any outcome or error.
There are no re-subscriptions and no retries: if the stream breaks or ends
before the condition is met, it is an error, not a reason to try again.

The outcomes are returned rather than raised: it is for the caller to decide
if a timeout is fatal (in the fixtures, it always is). The errors, on the
contrary, are raised: a broken subscription is never an expected outcome.
"""
import asyncio
import contextlib
import dataclasses
import enum
import math
from typing import Any, AsyncIterator, Callable, Optional

from rollfix._cogs.clients import watching
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import bodies, references

Predicate = Callable[[bodies.Body], bool]


class InconsistencyError(Exception):
    """
    Raised when the watch-stream delivers something other than the watched resource.

    This should be impossible with a server-side filtered stream,
    so it is treated as a broken contract of the API, not as a skippable event.
    """


class WaitOutcome(enum.Enum):
    MET = enum.auto()
    TIMED_OUT = enum.auto()


@dataclasses.dataclass(frozen=True)
class WaitResult:
    outcome: WaitOutcome
    elapsed: float  # seconds

    def __bool__(self) -> bool:
        return self.outcome is WaitOutcome.MET


async def wait_for_condition(
        *,
        settings: configuration.FixtureSettings,
        resource: references.Resource,
        ref: references.ObjectRef,
        predicate: Predicate,
        condition: str,
        timeout: float,
        logger: typedefs.Logger,
) -> WaitResult:
    """
    Block until the predicate is true for the object, or until the timeout.

    The condition is a human-readable description for logging only.
    """
    loop = asyncio.get_running_loop()
    started = loop.time()
    logger.info(f"Waiting for condition: {condition}")

    # Close the HTTP response as soon as we are done, even if the stream is in the middle of a read.
    stopper: asyncio.Future[Any] = loop.create_future()
    events: AsyncIterator[bodies.RawEvent] = watching.watch_objs(
        settings=settings,
        resource=resource,
        namespace=ref.namespace,
        name=ref.name,
        server_timeout=math.ceil(timeout),
        stopper=stopper,
    )
    deadline = asyncio.create_task(asyncio.sleep(timeout), name=f"deadline for {condition}")
    getter: Optional[asyncio.Future[bodies.RawEvent]] = None
    try:
        while True:
            getter = asyncio.ensure_future(events.__anext__())
            done, _ = await asyncio.wait({getter, deadline}, return_when=asyncio.FIRST_COMPLETED)

            # The deadline wins all ties: a snapshot that came too late does not count.
            if deadline in done:
                return WaitResult(WaitOutcome.TIMED_OUT, loop.time() - started)

            try:
                raw_event = getter.result()
            except StopAsyncIteration:
                raise watching.WatchingError(f"The watch-stream for {ref} ended "
                                             f"before the condition was met: {condition}") from None
            finally:
                getter = None

            raw_body = raw_event.get('object')
            if not bodies.is_of_resource(raw_body, resource):
                raise InconsistencyError(f"Expected {resource.kind} {ref} in the watch-stream, "
                                         f"got: {raw_body!r}")

            if predicate(bodies.Body(raw_body)):
                elapsed = loop.time() - started
                logger.info(f"Condition {condition!r} met after {int(elapsed)}s")
                return WaitResult(WaitOutcome.MET, elapsed)

    finally:
        deadline.cancel()
        if getter is not None:
            getter.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):  # abandoned read
                await getter
        if not stopper.done():
            stopper.set_result(None)
        await events.aclose()  # type: ignore[attr-defined]
        with contextlib.suppress(asyncio.CancelledError):
            await deadline
