"""
One-shot lifecycle commands on a rollout, with the patches of the rollouts' kubectl plugin.

Every command is a single attempt of one or a few API calls. The errors are
escalated as they are; there are no retries and no rollbacks of partial changes.
The commands neither log nor check the preconditions: it is for the callers.
"""
import datetime
from typing import Any, Dict, List, Optional

from rollfix._cogs.clients import deleting, fetching, patching
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import bodies, references

CONTAINER_FIELDS = ['containers', 'initContainers', 'ephemeralContainers']


class ContainerNotFoundError(Exception):
    """ Raised when the image is set for a container that is not in the pod template. """


async def set_image(
        *,
        settings: configuration.FixtureSettings,
        ref: references.ObjectRef,
        container: str,
        image: str,
        logger: typedefs.Logger,
) -> Optional[bodies.RawBody]:
    """
    Set the image of the pod template's containers, either all (``*``) or one by name.
    """
    body = await fetching.read_obj(
        settings=settings,
        resource=references.ROLLOUTS,
        namespace=ref.namespace,
        name=ref.name,
        logger=logger,
    )
    found = update_images(body, container=container, image=image)
    if not found:
        raise ContainerNotFoundError(f"Unable to find container named {container!r}.")
    return await patching.replace_obj(
        settings=settings,
        resource=references.ROLLOUTS,
        namespace=ref.namespace,
        name=ref.name,
        body=body,
        logger=logger,
    )


def update_images(body: bodies.RawBody, *, container: str, image: str) -> bool:
    """ Modify the containers' images in place; return whether any container matched. """
    found = False
    template_spec = (((body.get('spec') or {}).get('template') or {}).get('spec') or {})
    for field in CONTAINER_FIELDS:
        containers: List[Dict[str, Any]] = template_spec.get(field) or []
        for item in containers:
            if container == '*' or item.get('name') == container:
                item['image'] = image
                found = True
    return found


async def promote(
        *,
        settings: configuration.FixtureSettings,
        ref: references.ObjectRef,
        skip_current_step: bool = False,
        full: bool = False,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Unpause a paused rollout, or move it to the next step, or promote it fully.

    The current state is read first, since the patch depends on it:
    e.g., there is no next step after the last one.
    """
    body = await fetching.read_obj(
        settings=settings,
        resource=references.ROLLOUTS,
        namespace=ref.namespace,
        name=ref.name,
        logger=logger,
    )
    patch = build_promotion_patch(body, skip_current_step=skip_current_step, full=full)
    return await patching.patch_obj(
        settings=settings,
        resource=references.ROLLOUTS,
        namespace=ref.namespace,
        name=ref.name,
        patch=patch,
        logger=logger,
    )


def build_promotion_patch(
        body: bodies.RawBody,
        *,
        skip_current_step: bool = False,
        full: bool = False,
) -> Dict[str, Any]:
    """
    Build the patch for one of the three kinds of promotion.

    By default, the pauses are removed and the controller continues the steps.
    Skipping moves to the next canary step (an unset index is the 0th step).
    The full promotion skips all the remaining steps & analyses on the controller's side.
    """
    if skip_current_step and full:
        raise ValueError("Either the current step can be skipped or the promotion be full, not both.")

    spec = body.get('spec') or {}
    status = body.get('status') or {}
    steps = ((spec.get('strategy') or {}).get('canary') or {}).get('steps') or []

    if skip_current_step:
        if not steps:
            return {}
        index = status.get('currentStepIndex') or 0
        return {'status': {'currentStepIndex': min(index + 1, len(steps))}}

    if full:
        return {} if status.get('promoteFull') else {'status': {'promoteFull': True}}

    patch: Dict[str, Any] = {}
    if spec.get('paused'):
        patch['spec'] = {'paused': False}
    if status.get('pauseConditions'):
        patch['status'] = {'pauseConditions': None}
    elif status.get('controllerPause'):
        patch['status'] = {'controllerPause': False}
    return patch


async def abort(
        *,
        settings: configuration.FixtureSettings,
        ref: references.ObjectRef,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    return await patching.patch_obj(
        settings=settings,
        resource=references.ROLLOUTS,
        namespace=ref.namespace,
        name=ref.name,
        patch={'status': {'abort': True}},
        logger=logger,
    )


async def retry(
        *,
        settings: configuration.FixtureSettings,
        ref: references.ObjectRef,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    return await patching.patch_obj(
        settings=settings,
        resource=references.ROLLOUTS,
        namespace=ref.namespace,
        name=ref.name,
        patch={'status': {'abort': False}},
        logger=logger,
    )


async def restart(
        *,
        settings: configuration.FixtureSettings,
        ref: references.ObjectRef,
        now: Optional[datetime.datetime] = None,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Request the pods' restart; the controller restarts the pods created before this time.
    """
    now = now if now is not None else datetime.datetime.now(datetime.timezone.utc)
    restart_at = now.astimezone(datetime.timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
    return await patching.patch_obj(
        settings=settings,
        resource=references.ROLLOUTS,
        namespace=ref.namespace,
        name=ref.name,
        patch={'spec': {'restartAt': restart_at}},
        logger=logger,
    )


async def delete(
        *,
        settings: configuration.FixtureSettings,
        ref: references.ObjectRef,
        logger: typedefs.Logger,
) -> None:
    await deleting.delete_obj(
        settings=settings,
        resource=references.ROLLOUTS,
        namespace=ref.namespace,
        name=ref.name,
        logger=logger,
    )
