import asyncio
import contextlib
import dataclasses
import functools
from typing import Any, Callable, Iterator, List, Optional

import aiohttp
import click

from rollfix._cogs.clients import errors, fetching
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import loaders
from rollfix._cogs.structs import bodies, credentials, references
from rollfix._core.actions import application, loggers, status
from rollfix.testing import failures, fixtures


@dataclasses.dataclass()
class CLIControls:
    """ `Fixture` controls, which are impossible to pass via CLI. """
    info: Optional[credentials.ConnectionInfo] = None
    settings: Optional[configuration.FixtureSettings] = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


@contextlib.contextmanager
def _fixture(controls: CLIControls, namespace: Optional[str]) -> Iterator[fixtures.Fixture]:
    try:
        with fixtures.Fixture(namespace=namespace,
                              settings=controls.settings,
                              info=controls.info) as fixture:
            yield fixture
    except credentials.LoginError as e:
        raise click.ClickException(str(e))
    except failures.FixtureFailure as e:
        raise click.ClickException(str(e))


def _rollout(fixture: fixtures.Fixture, name: str) -> fixtures.Given:
    return fixture.given().rollout({
        'apiVersion': references.ROLLOUTS.api_version,
        'kind': references.ROLLOUTS.kind,
        'metadata': {'name': name, 'namespace': fixture.namespace},
    })


pass_controls = click.make_pass_decorator(CLIControls, ensure=True)


@click.version_option(prog_name='rollfix')
@click.group(name='rollfix', context_settings=dict(
    auto_envvar_prefix='ROLLFIX',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str)
@click.argument('paths', nargs=-1, required=True)
@pass_controls
def apply(__controls: CLIControls, paths: List[str], namespace: Optional[str]) -> None:
    """ Apply the manifests from the files server-side, in order. """
    try:
        objs = loaders.load_manifest_files(paths)
    except (OSError, loaders.ManifestError) as e:
        raise click.ClickException(str(e))
    with _fixture(__controls, namespace) as fixture:
        try:
            fixture.run(application.apply_objs(
                settings=fixture.settings,
                objs=objs,
                namespace=fixture.namespace,
                logger=fixtures.logger,
            ))
        except application.ApplicationError as e:
            raise click.ClickException(str(e))


@main.command('status')
@logging_options
@click.option('-n', '--namespace', type=str)
@click.argument('name')
@pass_controls
def show_status(__controls: CLIControls, name: str, namespace: Optional[str]) -> None:
    """ Print the rollout's status and the message explaining it. """
    with _fixture(__controls, namespace) as fixture:
        ref = _rollout(fixture, name).common.require()
        try:
            raw_body = fixture.run(fetching.read_obj(
                settings=fixture.settings,
                resource=references.ROLLOUTS,
                namespace=ref.namespace,
                name=ref.name,
                logger=fixtures.logger,
            ))
        except (errors.APIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise click.ClickException(f"Reading {ref} failed: {e}")
        actual, message = status.rollout_status(bodies.Body(raw_body))
        click.echo(f"{actual}: {message}" if message else actual)


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str)
@click.option('-s', '--status', 'expected_status', type=str)
@click.option('--step', 'expected_step', type=int)
@click.option('-t', '--timeout', type=float)
@click.argument('name')
@pass_controls
def wait(
        __controls: CLIControls,
        name: str,
        namespace: Optional[str],
        expected_status: Optional[str],
        expected_step: Optional[int],
        timeout: Optional[float],
) -> None:
    """ Wait until the rollout reaches the status or the canary step. """
    if (expected_status is None) == (expected_step is None):
        raise click.UsageError("Exactly one of --status or --step must be used.")
    with _fixture(__controls, namespace) as fixture:
        when = _rollout(fixture, name).when()
        if expected_status is not None:
            when.wait_for_rollout_status(expected_status, timeout=timeout)
        else:
            when.wait_for_rollout_canary_step_index(expected_step, timeout=timeout)


@main.command('set-image')
@logging_options
@click.option('-n', '--namespace', type=str)
@click.option('-c', '--container', type=str, default='*')
@click.argument('name')
@click.argument('image')
@pass_controls
def set_image(
        __controls: CLIControls,
        name: str,
        image: str,
        container: str,
        namespace: Optional[str],
) -> None:
    """ Update the image of one or all containers of the rollout. """
    with _fixture(__controls, namespace) as fixture:
        _rollout(fixture, name).when().update_image(image, container=container)


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str)
@click.option('--skip-current-step', is_flag=True)
@click.option('--full', is_flag=True)
@click.argument('name')
@pass_controls
def promote(
        __controls: CLIControls,
        name: str,
        namespace: Optional[str],
        skip_current_step: bool,
        full: bool,
) -> None:
    """ Promote a paused rollout to the next step, or fully. """
    if skip_current_step and full:
        raise click.UsageError("Either --skip-current-step or --full can be used, not both.")
    with _fixture(__controls, namespace) as fixture:
        _rollout(fixture, name).when().promote_rollout(skip_current_step=skip_current_step,
                                                       full=full)


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str)
@click.argument('name')
@pass_controls
def abort(__controls: CLIControls, name: str, namespace: Optional[str]) -> None:
    """ Abort the rollout's update and scale the stable version back up. """
    with _fixture(__controls, namespace) as fixture:
        _rollout(fixture, name).when().abort_rollout()


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str)
@click.argument('name')
@pass_controls
def retry(__controls: CLIControls, name: str, namespace: Optional[str]) -> None:
    """ Retry an aborted rollout. """
    with _fixture(__controls, namespace) as fixture:
        _rollout(fixture, name).when().retry_rollout()


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str)
@click.argument('name')
@pass_controls
def restart(__controls: CLIControls, name: str, namespace: Optional[str]) -> None:
    """ Restart the rollout's pods. """
    with _fixture(__controls, namespace) as fixture:
        _rollout(fixture, name).when().restart_rollout()


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str)
@click.argument('name')
@pass_controls
def delete(__controls: CLIControls, name: str, namespace: Optional[str]) -> None:
    """ Delete the rollout. """
    with _fixture(__controls, namespace) as fixture:
        _rollout(fixture, name).when().delete_rollout()
