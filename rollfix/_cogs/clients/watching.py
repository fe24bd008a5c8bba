"""
Watching one specific object via the watch-streams.

Unlike a general-purpose watcher, the stream here is scoped to exactly one
object by its name (filtered server-side with a field selector), and is never
re-established when it ends: whoever consumes the stream decides what to do
when it is over. There is also no listing before watching: when no resource
version is given, the API server itself sends the current state of the object
as the first "ADDED" event, and then all the changes as they happen.
"""
import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional, cast

import aiohttp

from rollfix._cogs.clients import api
from rollfix._cogs.configs import configuration
from rollfix._cogs.structs import bodies, references

logger = logging.getLogger(__name__)


class WatchingError(Exception):
    """
    Raised when an unexpected error happens in the watch-stream API.
    """


async def watch_objs(
        *,
        settings: configuration.FixtureSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        server_timeout: Optional[float] = None,
        stopper: Optional["asyncio.Future[Any]"] = None,
) -> AsyncIterator[bodies.RawEvent]:
    """
    Watch one object of a specific resource type by its name.

    The stream ends when the server closes it (e.g. on its timeout),
    or when the stopper is done (the connection is then closed client-side).
    """
    params: Dict[str, str] = {}
    params['watch'] = 'true'
    params['fieldSelector'] = f'metadata.name={name}'
    if server_timeout is not None:
        params['timeoutSeconds'] = str(max(1, int(server_timeout)))

    connect_timeout = (
        settings.watching.connect_timeout if settings.watching.connect_timeout is not None else
        settings.networking.connect_timeout if settings.networking.connect_timeout is not None else
        settings.networking.request_timeout
    )

    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    logger.debug(f"Starting the watch-stream for {resource} {name!r} {where}.")
    try:
        async for raw_input in api.stream(
            url=resource.get_url(namespace=namespace, params=params),
            logger=logger,
            settings=settings,
            stopper=stopper,
            timeout=aiohttp.ClientTimeout(
                total=settings.watching.client_timeout,
                sock_connect=connect_timeout,
            ),
        ):
            raw_type = raw_input.get('type')
            raw_object = raw_input.get('object')

            # Watch errors (incl. "410 Gone") cannot be fixed without re-watching, which we never do.
            if raw_type == 'ERROR':
                raise WatchingError(f"Error in the watch-stream: {raw_object}")

            # Ensure that the event is something we understand and can handle.
            if raw_type not in ['ADDED', 'MODIFIED', 'DELETED']:
                logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
                continue

            yield cast(bodies.RawEvent, raw_input)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {name!r} {where}.")
