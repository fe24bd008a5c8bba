import pytest

from rollfix._cogs.clients import fetching
from rollfix._cogs.structs.credentials import ConnectionInfo
from rollfix._core.actions import application, commanding
from rollfix._core.engines import waiting
from rollfix.testing import Fixture

REMOTE_ACTIONS = ['apply_objs', 'set_image', 'promote', 'abort', 'retry', 'restart', 'delete',
                  'read_obj', 'wait_for_condition']


@pytest.fixture()
def rollout_yaml():
    return """
        apiVersion: argoproj.io/v1alpha1
        kind: Rollout
        metadata:
          name: name1
        spec:
          replicas: 1
          strategy:
            canary:
              steps:
              - setWeight: 20
              - pause: {}
    """


@pytest.fixture()
def service_yaml():
    return """
        apiVersion: v1
        kind: Service
        metadata:
          name: svc1
        spec:
          ports:
          - port: 80
    """


@pytest.fixture()
def fixture():
    # The server is never contacted: all the actions are mocked in these tests.
    with Fixture(namespace='ns1', info=ConnectionInfo(server='http://fake-host')) as fixture:
        yield fixture


@pytest.fixture()
def given(fixture):
    return fixture.given()


@pytest.fixture()
def actions(mocker):
    """ All the remote activities of the fixtures, mocked so that nothing goes out. """
    return mocker.Mock(
        apply_objs=mocker.patch.object(application, 'apply_objs', return_value=[]),
        set_image=mocker.patch.object(commanding, 'set_image', return_value={}),
        promote=mocker.patch.object(commanding, 'promote', return_value={}),
        abort=mocker.patch.object(commanding, 'abort', return_value={}),
        retry=mocker.patch.object(commanding, 'retry', return_value={}),
        restart=mocker.patch.object(commanding, 'restart', return_value={}),
        delete=mocker.patch.object(commanding, 'delete', return_value=None),
        read_obj=mocker.patch.object(fetching, 'read_obj', return_value={}),
        wait_for_condition=mocker.patch.object(
            waiting, 'wait_for_condition',
            return_value=waiting.WaitResult(waiting.WaitOutcome.MET, 0.0)),
    )


@pytest.fixture()
def remote_calls(actions):
    """ A function to list the remote actions called so far, in the order of declaration. """
    return lambda: [name for name in REMOTE_ACTIONS if getattr(actions, name).called]
