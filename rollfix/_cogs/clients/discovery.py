from typing import Optional

from rollfix._cogs.clients import api, auth, errors
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import references


class DiscoveryError(Exception):
    """ Raised when the resource of a manifest is not served by the cluster. """


@auth.authenticated
async def discover(
        *,
        settings: configuration.FixtureSettings,
        api_version: str,
        kind: str,
        logger: typedefs.Logger,
        context: Optional[auth.APIContext] = None,  # injected by the decorator
) -> references.Resource:
    """
    Find the resource (the plural name & scope) of a kind in an API version.

    The API version's resources are requested only once per fixture,
    and are then cached for all other kinds in the same API version.
    """
    if context is None:
        raise RuntimeError("API instance is not injected by the decorator.")

    group, _, version = api_version.rpartition('/')
    if api_version not in context.discovered:
        async with context.discovery_lock:
            if api_version not in context.discovered:
                probe = references.Resource(group, version, '')
                try:
                    rsp = await api.get(
                        url=probe.get_version_url(),
                        settings=settings,
                        logger=logger,
                    )
                except (errors.APINotFoundError, errors.APIForbiddenError):
                    rsp = {}

                context.discovered[api_version] = {
                    info['kind']: references.Resource(
                        group=group,
                        version=version,
                        plural=info['name'],
                        kind=info['kind'],
                        namespaced=info.get('namespaced', True),
                        subresources=frozenset(
                            subinfo['name'].split('/', 1)[1]
                            for subinfo in rsp.get('resources', [])
                            if subinfo['name'].startswith(f"{info['name']}/")
                        ),
                    )
                    for info in rsp.get('resources', [])
                    if '/' not in info['name']
                }

    try:
        return context.discovered[api_version][kind]
    except KeyError:
        raise DiscoveryError(f"The server does not serve {kind} in {api_version}.") from None
