from typing import Dict

from rollfix._cogs.clients import api
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import bodies, references


async def apply_obj(
        *,
        settings: configuration.FixtureSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        data: bytes,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Create or update an object with a server-side apply, as ``kubectl apply`` does.

    The data are the pre-serialised manifest (JSON is a valid YAML),
    so that the serialisation failures are detected before any API calls.
    """
    params: Dict[str, str] = {}
    params['fieldManager'] = settings.applying.field_manager
    if settings.applying.force:
        params['force'] = 'true'

    applied_body: bodies.RawBody = await api.patch(
        url=resource.get_url(namespace=namespace, name=name, params=params),
        headers={'Content-Type': 'application/apply-patch+yaml'},
        payload=data,
        settings=settings,
        logger=logger,
    )
    return applied_body
