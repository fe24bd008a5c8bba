"""
The human-readable status of a rollout, as shown by the rollouts' CLI & UI.

The status is not stored anywhere in the rollout: it is computed from
the rollout's spec and status fields by a sequence of rules, the first
matching rule wins. The rules are checked from the most severe to the least.
"""
from typing import Any, Mapping, Tuple

HEALTHY = 'Healthy'
PROGRESSING = 'Progressing'
PAUSED = 'Paused'
DEGRADED = 'Degraded'

# The conditions' reasons that make a rollout degraded regardless of its other fields.
DEGRADING_REASONS = frozenset({'RolloutAborted', 'ProgressDeadlineExceeded'})


def rollout_status(body: Mapping[str, Any]) -> Tuple[str, str]:
    """
    Compute the status of a rollout and a short explanation of it.
    """
    metadata = body.get('metadata') or {}
    spec = body.get('spec') or {}
    status = body.get('status') or {}

    # Older controllers keep a hash here, not the generation; only compare the numeric ones.
    observed = status.get('observedGeneration')
    generation = metadata.get('generation')
    if observed is not None and generation is not None and str(observed).isdigit():
        if str(observed) != str(generation):
            return PROGRESSING, "waiting for rollout spec update to be observed"

    for condition in status.get('conditions') or []:
        if condition.get('type') == 'InvalidSpec':
            return DEGRADED, f"InvalidSpec: {condition.get('message', '')}"
        if condition.get('reason') in DEGRADING_REASONS:
            return DEGRADED, f"{condition.get('reason')}: {condition.get('message', '')}"

    if spec.get('paused'):
        return PAUSED, "manually paused"

    for pause_condition in status.get('pauseConditions') or []:
        return PAUSED, str(pause_condition.get('reason', ''))

    replicas = spec.get('replicas')
    replicas = 1 if replicas is None else replicas
    current_replicas = status.get('replicas') or 0
    updated_replicas = status.get('updatedReplicas') or 0
    available_replicas = status.get('availableReplicas') or 0
    if updated_replicas < replicas:
        return PROGRESSING, "more replicas need to be updated"
    if current_replicas > updated_replicas:
        return PROGRESSING, "old replicas are pending termination"
    if available_replicas < updated_replicas:
        return PROGRESSING, "updated replicas are still becoming available"

    strategy = spec.get('strategy') or {}
    pod_hash = status.get('currentPodHash')
    stable_rs = status.get('stableRS')
    if strategy.get('blueGreen') is not None:
        active_selector = (status.get('blueGreen') or {}).get('activeSelector')
        if not active_selector or active_selector != pod_hash:
            return PROGRESSING, "active service cutover pending"
        if not stable_rs or stable_rs != pod_hash:
            return PROGRESSING, "waiting for analysis to complete"
    elif strategy.get('canary') is not None:
        if strategy['canary'].get('trafficRouting') is None:
            if current_replicas > available_replicas:
                return PROGRESSING, "waiting for all steps to complete"
        if not stable_rs or stable_rs != pod_hash:
            return PROGRESSING, "waiting for all steps to complete"

    return HEALTHY, ""
