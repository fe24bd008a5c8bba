from typing import Any, Mapping, Optional

from rollfix._cogs.clients import api
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import bodies, references


async def patch_obj(
        *,
        settings: configuration.FixtureSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        patch: Mapping[str, Any],
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Patch a resource of specific kind with a JSON merge-patch.

    If the resource has the status subresource, the status part of the patch
    is sent to it separately (otherwise, it would be silently ignored),
    and the rest of the patch goes to the main resource.

    Returns the patched body. The patched body can be partial (status-only,
    no-status, or empty) -- depending on whether there were fields in the body
    or in the status to patch; if neither had fields for patching, the result
    is an empty body.
    """
    as_subresource = 'status' in resource.subresources
    body_patch = dict(patch)  # shallow: for mutation of the top-level keys below.
    status_patch = body_patch.pop('status', None) if as_subresource else None

    patched_body = bodies.RawBody()

    if body_patch:
        patched_body = await api.patch(
            url=resource.get_url(namespace=namespace, name=name),
            headers={'Content-Type': 'application/merge-patch+json'},
            payload=body_patch,
            settings=settings,
            logger=logger,
        )

    if status_patch:
        response = await api.patch(
            url=resource.get_url(namespace=namespace, name=name, subresource='status'),
            headers={'Content-Type': 'application/merge-patch+json'},
            payload={'status': status_patch},
            settings=settings,
            logger=logger,
        )
        patched_body['status'] = response.get('status')

    return patched_body


async def replace_obj(
        *,
        settings: configuration.FixtureSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> Optional[bodies.RawBody]:
    """
    Replace the whole object (except the status) with the new body.

    The body must carry the resource version it was read with,
    so that the concurrent modifications are detected as conflicts.
    """
    replaced_body: Optional[bodies.RawBody] = await api.put(
        url=resource.get_url(namespace=namespace, name=name),
        payload=body,
        settings=settings,
        logger=logger,
    )
    return replaced_body
