"""
Applying the manifests to the cluster, one by one, as ``kubectl apply`` does.

The objects are applied in the given order, each independently. The first
failure stops the whole application: the remaining objects are not applied,
and the already applied ones are left in place (nothing is rolled back).
"""
import asyncio
from typing import Any, List, Mapping, Sequence, cast

import aiohttp

from rollfix._cogs.clients import applying, discovery, errors
from rollfix._cogs.configs import configuration
from rollfix._cogs.helpers import loaders, typedefs
from rollfix._cogs.structs import bodies, references


class ApplicationError(Exception):
    """
    Raised when an object cannot be applied, with the original error as the cause.
    """

    def __init__(self, kind: str, name: str, reason: BaseException) -> None:
        super().__init__(f"apply of {kind} {name} failed: {reason}")
        self.kind = kind
        self.name = name
        self.reason = reason


async def apply_objs(
        *,
        settings: configuration.FixtureSettings,
        objs: Sequence[Mapping[str, Any]],
        namespace: references.Namespace,
        logger: typedefs.Logger,
) -> List[bodies.RawBody]:
    """
    Serialise & apply the objects in order; stop at the first failure.

    The objects without an explicit namespace go to the default namespace
    (if they are namespaced at all, as discovered from the API).
    """
    applied: List[bodies.RawBody] = []
    for obj in objs:
        kind = str(obj.get('kind', ''))
        name = str((obj.get('metadata') or {}).get('name', ''))
        try:
            data = loaders.serialize(obj)
            resource = await discovery.discover(
                settings=settings,
                api_version=str(obj.get('apiVersion', '')),
                kind=kind,
                logger=logger,
            )
            obj_namespace = (obj.get('metadata') or {}).get('namespace') or namespace
            body = await applying.apply_obj(
                settings=settings,
                resource=resource,
                namespace=cast(references.Namespace, obj_namespace),
                name=name,
                data=data,
                logger=logger,
            )
        except (loaders.SerializationError, discovery.DiscoveryError, errors.APIError,
                aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ApplicationError(kind, name, e) from e

        what = f"{resource.plural}.{resource.group}" if resource.group else resource.plural
        logger.info(f"{what}/{name} serverside-applied")
        applied.append(body)
    return applied
