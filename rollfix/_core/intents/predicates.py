"""
Ready-made predicates for the most common conditions on rollouts.

Every factory returns a pure function of a snapshot, plus a description
of the condition for the logs, both ready to be passed to the wait engine.
"""
from typing import Tuple

from rollfix._cogs.structs import bodies
from rollfix._core.actions import status
from rollfix._core.engines import waiting


def status_is(expected: str) -> Tuple[waiting.Predicate, str]:
    def check(body: bodies.Body) -> bool:
        actual, _ = status.rollout_status(body)
        return actual == expected
    return check, f"status={expected}"


def canary_step_index_is(expected: int) -> Tuple[waiting.Predicate, str]:
    # An absent index is not the same as the 0th one: the canary has not started yet.
    def check(body: bodies.Body) -> bool:
        index = body.status.get('currentStepIndex')
        if index is None:
            return False
        return bool(index == expected)
    return check, f"status.currentStepIndex={expected}"
