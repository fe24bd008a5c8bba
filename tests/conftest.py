import asyncio
import collections
import contextlib
import dataclasses
import io
import json
import logging
import re
import sys
from contextvars import ContextVar
from typing import Any, Mapping

import aiohttp.web
import pytest
from aiohttp.test_utils import RawTestServer

from rollfix._cogs.clients import auth
from rollfix._cogs.configs.configuration import FixtureSettings
from rollfix._cogs.structs.credentials import ConnectionInfo
from rollfix._cogs.structs.references import ROLLOUTS, ObjectRef
from rollfix._core.actions.loggers import ObjectPrefixingTextFormatter, configure

pytest_plugins = ['pytester']


@pytest.fixture()
def settings():
    return FixtureSettings()


@pytest.fixture()
def logger():
    return logging.getLogger('rollfix.tests')


@pytest.fixture()
def ref():
    return ObjectRef(namespace='ns1', name='name1')


@pytest.fixture()
def resource():
    """ The resource used in the tests. Mostly mocked, so it rarely matters. """
    return ROLLOUTS


@pytest.fixture()
def make_rollout():
    """
    A factory of rollout bodies, with only the fields that matter in a test.

    Sample usage::

        def test_me(make_rollout):
            body = make_rollout(status={'currentStepIndex': 1})
    """
    def make(*, name='name1', namespace='ns1', generation=1, spec=None, status=None):
        return {
            'apiVersion': 'argoproj.io/v1alpha1',
            'kind': 'Rollout',
            'metadata': {'name': name, 'namespace': namespace, 'generation': generation},
            'spec': dict(spec or {}),
            'status': dict(status or {}),
        }
    return make


#
# A fake Kubernetes API. Reasons:
# 1. No external calls must be made under any circumstances.
#    The unit-tests must be fully isolated from the environment.
# 2. The client code must be tested up to the HTTP level, incl. the streaming,
#    so the server is real, only the responses are pre-programmed by the tests.
#

@dataclasses.dataclass(frozen=True)
class FakeRequest:
    method: str
    path: str
    query: Mapping[str, str]
    headers: Mapping[str, str]
    data: Any  # parsed JSON if possible, the text otherwise, None if empty.


class FakeAPI:
    """
    Pre-programmed responses by HTTP method & path; all requests are recorded.

    The responses for the same method & path are used in the order of adding;
    the last one is repeated for all further requests. Unknown paths get 404.

    Sample usage::

        async def test_me(fake_api, api_context):
            fake_api.add('get', '/apis/argoproj.io/v1alpha1', body={'resources': []})
            await do_something()
            assert fake_api.requests[0].method == 'GET'
    """

    def __init__(self) -> None:
        super().__init__()
        self.url = ''
        self.requests: list[FakeRequest] = []
        self.released = asyncio.Event()
        self._responders = collections.defaultdict(list)

    def add(self, method, path, *, body=None, status=200, text=None, lines=None, hold=False):
        """
        Add a response: either a JSON body, or a plain text, or a stream of JSON lines.

        The streams are closed server-side after the last line, unless held:
        the held streams stay open until the fake server is shut down.
        """
        async def respond(request):
            if lines is not None:
                response = aiohttp.web.StreamResponse(status=status)
                response.content_type = 'application/json'
                await response.prepare(request)
                for line in lines:
                    await response.write(json.dumps(line).encode('utf-8') + b'\n')
                if hold:
                    await self.released.wait()
                with contextlib.suppress(ConnectionResetError):
                    await response.write_eof()
                return response
            elif text is not None:
                return aiohttp.web.Response(status=status, text=text)
            else:
                return aiohttp.web.json_response({} if body is None else body, status=status)

        self._responders[method.upper(), path].append(respond)

    def requested(self, method, path):
        return [r for r in self.requests if r.method == method.upper() and r.path == path]

    async def handle(self, request):
        raw = await request.read()
        try:
            data = json.loads(raw) if raw else None
        except ValueError:
            data = raw.decode('utf-8')
        self.requests.append(FakeRequest(
            method=request.method,
            path=request.path,
            query=dict(request.query),
            headers=dict(request.headers),
            data=data,
        ))

        responders = self._responders.get((request.method, request.path))
        if not responders:
            return aiohttp.web.json_response(status=404, data={
                'apiVersion': 'v1',
                'kind': 'Status',
                'code': 404,
                'status': 'Failure',
                'message': f'{request.path} not found',
            })
        responder = responders.pop(0) if len(responders) > 1 else responders[0]
        return await responder(request)


@pytest.fixture()
async def fake_api():
    api = FakeAPI()
    server = RawTestServer(api.handle)
    await server.start_server()
    api.url = str(server.make_url('/')).rstrip('/')
    try:
        yield api
    finally:
        api.released.set()  # unblock the held streams, if any.
        await server.close()


@pytest.fixture()
async def api_context(fake_api, mocker):
    """
    An API context pointing to the fake API, as if set by a running fixture.

    The context variable is replaced for the test's duration as a whole,
    so that the context is visible in all tasks regardless of where they run.
    """
    info = ConnectionInfo(server=fake_api.url, default_namespace='default')
    context = auth.APIContext(info)
    mocker.patch.object(auth, 'context_var', ContextVar('context_var', default=context))
    try:
        yield context
    finally:
        await context.close()


#
# Helpers for the logging checks.
#

@pytest.fixture()
def logstream(caplog):
    """ Prefixing is done at the final output. We have to intercept it. """

    logger = logging.getLogger()
    handlers = list(logger.handlers)

    # Setup all log levels of sub-libraries. A side-effect: the handlers are also added.
    configure(debug=True)

    # Remove any stream handlers added in the step above. But keep the caplog's handlers.
    for handler in list(logger.handlers):
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr:
            logger.removeHandler(handler)

    # Inject our stream-intercepting handler.
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    formatter = ObjectPrefixingTextFormatter('prefix %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    try:
        with caplog.at_level(logging.DEBUG):
            yield stream
    finally:
        logger.removeHandler(handler)
        logger.handlers[:] = handlers  # undo `configure()`


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    def assert_logs_fn(patterns, prohibited=[]):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            if remaining_patterns and re.search(remaining_patterns[0], message):
                remaining_patterns[:1] = []
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn


@pytest.fixture(autouse=True)
def _restored_logging():
    """ Undo the logging configuration by the CLI commands & other tests. """
    loggers = [logging.getLogger(name) for name in ['', 'asyncio', 'rollfix._cogs']]
    states = [(logger.propagate, list(logger.handlers), logger.level) for logger in loggers]
    try:
        yield
    finally:
        for logger, (propagate, handlers, level) in zip(loggers, states):
            logger.propagate = propagate
            logger.handlers[:] = handlers
            logger.setLevel(level)
