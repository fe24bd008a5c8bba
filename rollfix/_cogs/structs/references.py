"""
References to the resources and to the objects in the cluster.

The fixtures are built around one resource only: the Argo Rollouts.
All other resources (services, ingresses, analysis templates, etc)
are only applied with the rollouts, and are discovered from the API.
"""
import dataclasses
import urllib.parse
from typing import FrozenSet, Iterator, List, Mapping, NewType, Optional

# A specific really existing addressable namespace (at least, the one assumed to be so).
NamespaceName = NewType('NamespaceName', str)

# A namespace reference usable in the API calls. `None` means cluster-wide API calls.
Namespace = Optional[NamespaceName]


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Resource:
    """
    A resource kind as served by the API: a group, a version, and a plural name.

    Only the group, the version, and the plural name identify the resource
    and form its URLs; e.g. ``Resource('argoproj.io', 'v1alpha1', 'rollouts')``.
    The core v1 resources have an empty group: ``Resource('', 'v1', 'services')``.

    The kind is used to recognise the objects of this resource in the manifests
    and in the watch-streams. The scope is only known once discovered:
    ``None`` means "unknown", and such resources are treated as namespaced.
    """

    group: str
    version: str
    plural: str
    kind: Optional[str] = None
    namespaced: Optional[bool] = None
    subresources: FrozenSet[str] = frozenset()

    def __hash__(self) -> int:
        return hash(tuple(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return tuple(self) == tuple(other)

    def __repr__(self) -> str:
        return '.'.join(filter(None, [self.plural, self.version, self.group]))

    def __iter__(self) -> Iterator[str]:
        return iter((self.group, self.version, self.plural))

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def get_url(
            self,
            *,
            server: Optional[str] = None,
            namespace: Namespace = None,
            name: Optional[str] = None,
            subresource: Optional[str] = None,
            params: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Build a URL of the resource's list, or of an object, or of its subresource.

        Without a namespace, or for cluster-scoped resources, the URL is cluster-wide.
        The query parameters are url-encoded, e.g. for the field selectors.
        """
        if subresource is not None and name is None:
            raise ValueError("Subresources can be used only with specific resources by names.")
        if self.namespaced is False:
            namespace = None
        scope = ['namespaces', namespace] if namespace is not None else []
        return self._build_url(server, params, [*scope, self.plural, name, subresource])

    def get_version_url(
            self,
            *,
            server: Optional[str] = None,
            params: Optional[Mapping[str, str]] = None,
    ) -> str:
        return self._build_url(server, params, [])

    def _build_url(
            self,
            server: Optional[str],
            params: Optional[Mapping[str, str]],
            parts: List[Optional[str]],
    ) -> str:
        root = '/api' if self.group == '' and self.version == 'v1' else '/apis'
        path = '/'.join([root] + [part for part in [self.group, self.version, *parts] if part])
        if params:
            path += '?' + urllib.parse.urlencode(params, encoding='utf-8')
        return path if server is None else server.rstrip('/') + path


@dataclasses.dataclass(frozen=True)
class ObjectRef:
    """
    An identity of one specific object: a name within a namespace.

    The resource kind is implied by the context where the reference is used.
    """
    namespace: Namespace
    name: str

    def __str__(self) -> str:
        return f'{self.namespace}/{self.name}' if self.namespace else self.name


# The only resource the fixtures are built around. Other resources are discovered when applied.
ROLLOUTS = Resource(
    'argoproj.io', 'v1alpha1', 'rollouts',
    kind='Rollout',
    namespaced=True,
    subresources=frozenset({'status'}),
)
