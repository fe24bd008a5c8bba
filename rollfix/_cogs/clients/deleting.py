from rollfix._cogs.clients import api
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import references


async def delete_obj(
        *,
        settings: configuration.FixtureSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> None:
    """
    Delete one object by its name; the dependents are deleted in the background.
    """
    await api.delete(
        url=resource.get_url(namespace=namespace, name=name),
        payload={'propagationPolicy': 'Background'},
        settings=settings,
        logger=logger,
    )
