from rollfix._cogs.clients import api
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import bodies, references


async def read_obj(
        *,
        settings: configuration.FixtureSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Read one object of a specific resource type by its name.

    Unlike in the wait engine, the absent objects are not tolerated:
    the fixtures read only the objects they have created themselves,
    so the 404 errors are escalated as any other API errors.
    """
    body: bodies.RawBody = await api.get(
        url=resource.get_url(namespace=namespace, name=name),
        logger=logger,
        settings=settings,
    )
    return body
