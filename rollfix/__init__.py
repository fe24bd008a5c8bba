"""
The main rollfix module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the library's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from rollfix._cogs.configs.configuration import (
    FixtureSettings,
    NetworkingSettings,
    WatchingSettings,
    WaitingSettings,
    ApplyingSettings,
)
from rollfix._cogs.helpers.typedefs import (
    Logger,
)
from rollfix._cogs.helpers.versions import (
    version as __version__,
)
from rollfix._cogs.structs.bodies import (
    RawBody,
    RawEvent,
    Meta,
    Body,
)
from rollfix._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from rollfix._cogs.structs.references import (
    Resource,
    ObjectRef,
    ROLLOUTS,
)
from rollfix._core.actions.application import (
    ApplicationError,
)
from rollfix._core.actions.loggers import (
    configure,
    LogFormat,
    ObjectLogger,
)
from rollfix._core.actions.status import (
    HEALTHY,
    PROGRESSING,
    PAUSED,
    DEGRADED,
    rollout_status,
)
from rollfix._core.engines.waiting import (
    Predicate,
    InconsistencyError,
    WaitOutcome,
    WaitResult,
    wait_for_condition,
)
from rollfix._core.intents.piggybacking import (
    login,
    login_with_kubeconfig,
    login_with_service_account,
)
from rollfix._core.intents.predicates import (
    status_is,
    canary_step_index_is,
)
from rollfix.testing.failures import (
    FixtureFailure,
    Reporter,
)
from rollfix.testing.fixtures import (
    Fixture,
    Given,
    When,
    Then,
)

__all__ = [
    'FixtureSettings',
    'NetworkingSettings',
    'WatchingSettings',
    'WaitingSettings',
    'ApplyingSettings',
    'Logger',
    'RawBody',
    'RawEvent',
    'Meta',
    'Body',
    'LoginError',
    'ConnectionInfo',
    'Resource',
    'ObjectRef',
    'ROLLOUTS',
    'ApplicationError',
    'configure',
    'LogFormat',
    'ObjectLogger',
    'HEALTHY',
    'PROGRESSING',
    'PAUSED',
    'DEGRADED',
    'rollout_status',
    'Predicate',
    'InconsistencyError',
    'WaitOutcome',
    'WaitResult',
    'wait_for_condition',
    'login',
    'login_with_kubeconfig',
    'login_with_service_account',
    'status_is',
    'canary_step_index_is',
    'FixtureFailure',
    'Reporter',
    'Fixture',
    'Given',
    'When',
    'Then',
]
