"""
All configuration flags, options, settings to fine-tune the fixtures.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).
"""
import dataclasses
from typing import Optional


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for individual one-shot API calls (in seconds).
    Not used for the watch-streams: see ``settings.watching.client_timeout``.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for establishing a connection to the API (in seconds).
    ``None`` means the request timeout covers the connection too.
    """


@dataclasses.dataclass
class WatchingSettings:

    connect_timeout: Optional[float] = None
    """
    The maximum TCP connection timeout for the watch-streams (in seconds).

    If not set, ``settings.networking.connect_timeout`` is used,
    and then ``settings.networking.request_timeout``.
    """

    client_timeout: Optional[float] = None
    """
    The total client-side timeout of a watch-stream (in seconds).

    Normally not needed: every watch is bounded by the wait's own deadline,
    which is also passed to the server as ``timeoutSeconds``.
    """


@dataclasses.dataclass
class WaitingSettings:

    default_timeout: float = 90
    """
    How long to wait (in seconds) for the conditions of the convenience waits,
    such as ``wait_for_rollout_status()``, before failing the test.
    """


@dataclasses.dataclass
class ApplyingSettings:

    field_manager: str = 'rollfix'
    """
    The field manager's name for the server-side apply of the manifests.
    """

    force: bool = True
    """
    Should the server-side apply take over the fields owned by other managers
    (e.g. by ``kubectl`` or by previous test runs)? Same as ``--force-conflicts``.
    """


@dataclasses.dataclass
class FixtureSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    waiting: WaitingSettings = dataclasses.field(default_factory=WaitingSettings)
    applying: ApplyingSettings = dataclasses.field(default_factory=ApplyingSettings)
