"""
The fluent Given/When/Then fixtures for the end-to-end tests of rollouts.

Usage::

    from rollfix.testing import Fixture

    def test_canary_promotion():
        with Fixture(namespace='e2e') as fixture:
            (fixture.given()
                .rollout_objects(MANIFESTS)
            .when()
                .apply_manifests()
                .wait_for_rollout_status('Healthy')
                .update_image('argoproj/rollouts-demo:yellow')
                .wait_for_rollout_status('Paused')
                .promote_rollout()
                .wait_for_rollout_status('Healthy')
            .then()
                .expect_rollout_status('Healthy'))

Every step is executed immediately when called, and either returns
the same builder for chaining, or fails the test via the reporter.
The steps are synchronous: the fixture runs them to completion in its own
event loop, so the fixtures are usable from regular (non-async) tests only.
"""
import asyncio
import copy
import logging
from typing import Any, Callable, Coroutine, List, Mapping, NoReturn, Optional, TypeVar, Union, \
                   cast

from rollfix._cogs.clients import api, auth, fetching
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import loaders, typedefs
from rollfix._cogs.structs import bodies, credentials, references
from rollfix._core.actions import application, commanding, loggers, status
from rollfix._core.engines import waiting
from rollfix._core.intents import piggybacking, predicates
from rollfix.testing import failures

logger = logging.getLogger('rollfix.fixtures')

_T = TypeVar('_T')

DEFAULT_NAMESPACE = 'default'


class Fixture:
    """
    A connection to the cluster, in which the fixture sessions run.

    The fixture owns an event loop and an authenticated API session.
    Both are created when entering the context manager, and closed on exit.
    """

    def __init__(
            self,
            *,
            namespace: Optional[str] = None,
            settings: Optional[configuration.FixtureSettings] = None,
            info: Optional[credentials.ConnectionInfo] = None,
            reporter_factory: Callable[[], failures.Reporter] = failures.Reporter,
    ) -> None:
        super().__init__()
        self.settings = settings if settings is not None else configuration.FixtureSettings()
        self.reporter_factory = reporter_factory
        self._namespace = namespace
        self._info = info
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._context: Optional[auth.APIContext] = None

    def __enter__(self) -> "Fixture":
        info = self._info if self._info is not None else piggybacking.login(logger=logger)
        self._loop = asyncio.new_event_loop()
        try:
            self._context = self._loop.run_until_complete(self._connect(info))
        except BaseException:
            # __exit__() is not called when __enter__() fails.
            self._loop.close()
            self._loop = None
            raise
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._loop is not None:
            if self._context is not None:
                self._loop.run_until_complete(self._context.close())
            self._loop.close()
        self._context = None
        self._loop = None

    async def _connect(self, info: credentials.ConnectionInfo) -> auth.APIContext:
        # The aiohttp session must be created inside of the loop it will be used in.
        return auth.APIContext(info)

    @property
    def namespace(self) -> references.NamespaceName:
        if self._namespace is None:
            self._namespace = self.run(api.get_default_namespace()) or DEFAULT_NAMESPACE
        return references.NamespaceName(self._namespace)

    def run(self, coro: Coroutine[Any, Any, _T]) -> _T:
        """ Execute one step in the fixture's loop & API context. """
        if self._loop is None or self._context is None:
            coro.close()
            raise RuntimeError("The fixture is not entered: use it as a context manager.")
        return self._loop.run_until_complete(self._within_context(self._context, coro))

    @staticmethod
    async def _within_context(context: auth.APIContext, coro: Coroutine[Any, Any, _T]) -> _T:
        token = auth.context_var.set(context)
        try:
            return await coro
        finally:
            auth.context_var.reset(token)

    def given(self) -> "Given":
        return Given(Common(fixture=self, reporter=self.reporter_factory()))


class Common:
    """
    The state shared by all stages of one fixture session.

    The rollout's identity is bound once when the rollout is given,
    and stays the same for the whole session.
    """

    fixture: Fixture
    reporter: failures.Reporter
    rollout: Optional[bodies.RawBody]
    objects: List[Mapping[str, Any]]

    def __init__(self, *, fixture: Fixture, reporter: failures.Reporter) -> None:
        super().__init__()
        self.fixture = fixture
        self.reporter = reporter
        self.rollout = None
        self.objects = []
        self._ref: Optional[references.ObjectRef] = None
        self._log: typedefs.Logger = logger

    @property
    def settings(self) -> configuration.FixtureSettings:
        return self.fixture.settings

    @property
    def ref(self) -> Optional[references.ObjectRef]:
        return self._ref

    @property
    def log(self) -> typedefs.Logger:
        return self._log

    def bind(self, rollout: bodies.RawBody) -> None:
        name = (rollout.get('metadata') or {}).get('name')
        if not name:
            self.fatal("The rollout has no name.")
        namespace = (rollout.get('metadata') or {}).get('namespace') or self.fixture.namespace
        ref = references.ObjectRef(references.NamespaceName(namespace), name)
        if self._ref is not None and self._ref != ref:
            self.fatal(f"The rollout is already set to {self._ref}, cannot switch to {ref}.")
        self.rollout = rollout
        self._ref = ref
        self._log = loggers.ObjectLogger(ref=ref, resource=references.ROLLOUTS)

    def require(self, message: str = "Rollout not set") -> references.ObjectRef:
        self.reporter.ensure_alive()
        if self._ref is None:
            self.fatal(message)
        return self._ref

    def fatal(self, message: str) -> NoReturn:
        self.reporter.fatal(message, logger=self._log)

    def execute(self, what: str, coro: Coroutine[Any, Any, _T]) -> _T:
        """ Run a step; any error in it is a fatal failure of the test. """
        try:
            return self.fixture.run(coro)
        except failures.FixtureFailure:
            raise
        except Exception as e:
            self.fatal(f"{what} failed: {e}")


class _Stage:
    """ A common base for the stages: they only differ in the available steps. """

    def __init__(self, common: Common) -> None:
        super().__init__()
        self._common = common

    @property
    def common(self) -> Common:
        return self._common

    def given(self) -> "Given":
        return Given(self._common)

    def when(self) -> "When":
        return When(self._common)

    def then(self) -> "Then":
        return Then(self._common)


class Given(_Stage):

    def rollout(self, manifest: Union[str, Mapping[str, Any]]) -> "Given":
        """ Set the rollout manifest, either as YAML text or as a dict. """
        self._common.reporter.ensure_alive()
        objs = self._load(manifest)
        if len(objs) != 1 or objs[0].get('kind') != references.ROLLOUTS.kind:
            self._common.fatal("Expected exactly one Rollout in the manifest.")
        self._common.bind(cast(bodies.RawBody, copy.deepcopy(dict(objs[0]))))
        return self

    def rollout_objects(self, text: str) -> "Given":
        """ Set the rollout and the auxiliary objects from a multi-document YAML text. """
        self._common.reporter.ensure_alive()
        for obj in self._load(text):
            if obj.get('kind') == references.ROLLOUTS.kind:
                self._common.bind(cast(bodies.RawBody, copy.deepcopy(dict(obj))))
            else:
                self._common.objects.append(copy.deepcopy(dict(obj)))
        return self

    def objects(self, text: str) -> "Given":
        """ Add the auxiliary objects (services, ingresses, etc) to be applied with the rollout. """
        self._common.reporter.ensure_alive()
        self._common.objects.extend(copy.deepcopy(dict(obj)) for obj in self._load(text))
        return self

    def _load(self, manifest: Union[str, Mapping[str, Any]]) -> List[Mapping[str, Any]]:
        if isinstance(manifest, Mapping):
            return [manifest]
        try:
            return loaders.load_manifests(manifest)
        except loaders.ManifestError as e:
            self._common.fatal(str(e))


class When(_Stage):

    def apply_manifests(self) -> "When":
        common = self._common
        common.require("No rollout to create")
        objs = list(common.objects) + [cast(Mapping[str, Any], common.rollout)]
        try:
            common.fixture.run(application.apply_objs(
                settings=common.settings,
                objs=objs,
                namespace=common.fixture.namespace,
                logger=common.log,
            ))
        except application.ApplicationError as e:
            common.log.error(str(e))
            common.reporter.fail_now(str(e))
        return self

    def update_image(self, image: str, container: str = '*') -> "When":
        ref = self._common.require()
        self._common.execute("Updating the image", commanding.set_image(
            settings=self._common.settings,
            ref=ref,
            container=container,
            image=image,
            logger=self._common.log,
        ))
        self._common.log.info(f"Updated image to {image}")
        return self

    def promote_rollout(self, skip_current_step: bool = False, full: bool = False) -> "When":
        ref = self._common.require()
        self._common.execute("Promoting", commanding.promote(
            settings=self._common.settings,
            ref=ref,
            skip_current_step=skip_current_step,
            full=full,
            logger=self._common.log,
        ))
        self._common.log.info("Promoted rollout")
        return self

    def abort_rollout(self) -> "When":
        ref = self._common.require()
        self._common.execute("Aborting", commanding.abort(
            settings=self._common.settings,
            ref=ref,
            logger=self._common.log,
        ))
        self._common.log.info("Aborted rollout")
        return self

    def retry_rollout(self) -> "When":
        ref = self._common.require()
        self._common.execute("Retrying", commanding.retry(
            settings=self._common.settings,
            ref=ref,
            logger=self._common.log,
        ))
        self._common.log.info("Retried rollout")
        return self

    def restart_rollout(self) -> "When":
        ref = self._common.require()
        self._common.execute("Restarting", commanding.restart(
            settings=self._common.settings,
            ref=ref,
            logger=self._common.log,
        ))
        self._common.log.info("Restarted rollout")
        return self

    def delete_rollout(self) -> "When":
        ref = self._common.require()
        self._common.log.info("Deleting")
        self._common.execute("Deleting", commanding.delete(
            settings=self._common.settings,
            ref=ref,
            logger=self._common.log,
        ))
        return self

    def wait_for_rollout_status(self, status: str, timeout: Optional[float] = None) -> "When":
        predicate, condition = predicates.status_is(status)
        return self.wait_for_rollout_condition(predicate, condition, timeout)

    def wait_for_rollout_canary_step_index(self, index: int, timeout: Optional[float] = None) -> "When":
        predicate, condition = predicates.canary_step_index_is(index)
        return self.wait_for_rollout_condition(predicate, condition, timeout)

    def wait_for_rollout_condition(
            self,
            predicate: waiting.Predicate,
            condition: str,
            timeout: Optional[float] = None,
    ) -> "When":
        ref = self._common.require()
        timeout = timeout if timeout is not None else self._common.settings.waiting.default_timeout
        result = self._common.execute(f"Waiting for condition {condition}", waiting.wait_for_condition(
            settings=self._common.settings,
            resource=references.ROLLOUTS,
            ref=ref,
            predicate=predicate,
            condition=condition,
            timeout=timeout,
            logger=self._common.log,
        ))
        if result.outcome is waiting.WaitOutcome.TIMED_OUT:
            self._common.fatal(f"timeout after {timeout:g}s waiting for condition {condition}")
        return self


class Then(_Stage):

    def expect_rollout(self, description: str, predicate: waiting.Predicate) -> "Then":
        """ Check the current state of the rollout once, with no waiting. """
        body = self._read()
        if not predicate(body):
            self._common.fatal(f"Expectation failed: {description}")
        self._common.log.info(f"Expectation {description!r} met")
        return self

    def expect_rollout_status(self, expected: str) -> "Then":
        body = self._read()
        actual, message = status.rollout_status(body)
        if actual != expected:
            self._common.fatal(f"Expected status {expected}, got {actual}: {message}")
        self._common.log.info(f"Rollout has the expected status {expected}")
        return self

    def expect_canary_step_index(self, index: int) -> "Then":
        predicate, condition = predicates.canary_step_index_is(index)
        return self.expect_rollout(condition, predicate)

    def _read(self) -> bodies.Body:
        ref = self._common.require()
        raw_body = self._common.execute("Reading the rollout", fetching.read_obj(
            settings=self._common.settings,
            resource=references.ROLLOUTS,
            namespace=ref.namespace,
            name=ref.name,
            logger=self._common.log,
        ))
        return bodies.Body(raw_body)
