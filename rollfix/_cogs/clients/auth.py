import asyncio
import base64
import contextlib
import functools
import os
import ssl
import tempfile
from contextvars import ContextVar
from typing import Any, Callable, Dict, Optional, TypeVar, Union, cast

import aiohttp

from rollfix._cogs.helpers import versions
from rollfix._cogs.structs import credentials, references

# Per-fixture exchange point for the authenticated API session.
# Set by the fixture for every step it runs, so that all API calls in it share the session.
context_var: ContextVar["APIContext"] = ContextVar('context_var')

# A typevar to show that we return a function with the same signature as given.
_F = TypeVar('_F', bound=Callable[..., Any])


def authenticated(fn: _F) -> _F:
    """
    A decorator to inject a pre-authenticated session to a requesting routine.

    If the context is passed explicitly, it is used as is. Otherwise, the context
    of the currently running fixture is taken. There is no re-authentication:
    failed credentials fail the request, and so the test.
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        context: Optional[APIContext] = kwargs.pop('context', None)
        if context is None:
            try:
                context = context_var.get()
            except LookupError:
                raise RuntimeError("API context is not set: use the API calls in a fixture.")

        response = await fn(*args, **kwargs, context=context)
        if isinstance(response, aiohttp.ClientResponse):
            # Keep track of responses which are using this context.
            context.add_response(response)
        return response

    return cast(_F, wrapper)


class APIContext:
    """
    A container for an aiohttp session and the caches of the environment info.

    The container is constructed only once per fixture, and is closed
    together with the fixture. All requests of the fixture are performed
    in the fixture's event loop, so there is no need to split the sessions.
    """

    # The main contained object used by the API methods.
    session: aiohttp.ClientSession

    # Contextual information for URL building.
    server: str
    default_namespace: Optional[str]

    # List of open responses.
    responses: list[aiohttp.ClientResponse]

    # Resources by their API versions & kinds, as discovered on demand.
    discovered: Dict[str, Dict[str, references.Resource]]
    discovery_lock: asyncio.Lock

    def __init__(
            self,
            info: credentials.ConnectionInfo,
    ) -> None:
        super().__init__()

        self.session = self.make_aiohttp_session(info)

        # Self-identification for the API audit logs.
        if self.session.headers.get('User-Agent') is None:
            self.session.headers['User-Agent'] = f'rollfix/{versions.version or "0.0.0"}'

        self.server = info.server
        self.default_namespace = info.default_namespace

        self.responses = []
        self.discovered = {}
        self.discovery_lock = asyncio.Lock()

    def make_aiohttp_session(self, info: credentials.ConnectionInfo) -> aiohttp.ClientSession:
        auth = aiohttp.BasicAuth(info.username, info.password) if info.username and info.password else None
        return aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
            headers=make_auth_headers(info),
            auth=auth,
        )

    def add_response(self, response: aiohttp.ClientResponse) -> None:
        # The streaming responses can outlive the steps; they are closed with the session.
        self.responses[:] = [r for r in self.responses if not r.closed]
        if not response.closed:
            self.responses.append(response)

    async def close(self) -> None:
        for response in self.responses:
            if not response.closed:
                response.close()
        self.responses.clear()
        await self.session.close()


def make_auth_headers(info: credentials.ConnectionInfo) -> Dict[str, str]:
    """
    The ``Authorization`` header, if any: a token with its scheme, Bearer by default.
    """
    if info.scheme or info.token:
        value = ' '.join(filter(None, [info.scheme or 'Bearer', info.token]))
        return {'Authorization': value}
    return {}


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    The CA verification & the client certificates, from the files or the inline data.

    The inline certificates & keys are stored into temporary files only for loading,
    since :mod:`ssl` loads them from the files only. No files are created otherwise:
    the filesystem can be read-only in the clusters.
    """
    context = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=info.ca_path,
        cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
    )

    with contextlib.ExitStack() as stack:
        cert_path = _as_path(stack, info.certificate_path, info.certificate_data)
        pkey_path = _as_path(stack, info.private_key_path, info.private_key_data)
        if cert_path and pkey_path:
            context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)

    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _as_path(
        stack: contextlib.ExitStack,
        path: Optional[str],
        data: Optional[Union[str, bytes]],
) -> Optional[Union[str, "os.PathLike[str]"]]:
    if path:
        return path
    if data:
        file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
        file.write(decode_to_pem(data).encode('ascii'))
        return file.name
    return None


def decode_to_pem(data: Union[str, bytes]) -> str:
    """ Accept either the PEM text (as in the files) or its base64 (as in kubeconfigs). """
    match data:
        case str() if data.startswith('-----BEGIN '):
            return data
        case bytes() if data.startswith(b'-----BEGIN '):
            return data.decode('ascii')
        case _:
            return base64.b64decode(data).decode('ascii')
