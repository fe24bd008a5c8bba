"""
All the structures coming from/to the Kubernetes API.

Everything marked "raw" is a plain unwrapped unprocessed data as JSON-decoded
from Kubernetes API, usually as retrieved in watching or fetching API calls.
"Input" is a parsed JSON as is, while "event" is an "input" without "errors".
All non-used payload falls into `Any`, and is not type-checked.

The raw bodies are never given to the predicates directly. Instead, they are
wrapped into snapshots (:class:`Body`): read-only mappings over a private copy
of the raw data, so that the predicates cannot affect each other or the stream.
"""
import copy
from typing import Any, Iterator, Mapping, Optional, Union, cast

from typing_extensions import Literal, TypedDict

from rollfix._cogs.structs import references

RawInputType = Literal['ADDED', 'MODIFIED', 'DELETED', 'BOOKMARK', 'ERROR']
RawEventType = Literal['ADDED', 'MODIFIED', 'DELETED']


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    generation: int
    labels: Mapping[str, str]
    annotations: Mapping[str, str]
    resourceVersion: str
    creationTimestamp: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


# A special payload for type==ERROR (this is not a connection or client error).
class RawError(TypedDict, total=False):
    apiVersion: str     # usually: Literal['v1']
    kind: str           # usually: Literal['Status']
    code: int
    reason: str
    status: str
    message: str


# As received from the stream before processing the errors and special cases.
class RawInput(TypedDict, total=True):
    type: RawInputType
    object: Union[RawBody, RawError]


# As passed to the consumers after processing the errors and special cases.
class RawEvent(TypedDict, total=True):
    type: RawEventType
    object: RawBody


class MappingView(Mapping[str, Any]):
    """
    A read-only lazy resolver of a nested key path in a source mapping.

    Absent keys along the path are treated as empty dicts, so that
    ``body.status.get('field')`` works even if there is no status yet.
    """

    def __init__(self, __src: Mapping[str, Any], *path: str) -> None:
        super().__init__()
        self._src = __src
        self._path = path

    def __repr__(self) -> str:
        return repr(dict(self))

    def __len__(self) -> int:
        return len(self._resolve())

    def __iter__(self) -> Iterator[str]:
        return iter(self._resolve())

    def __getitem__(self, item: str) -> Any:
        return self._resolve()[item]

    def _resolve(self) -> Mapping[str, Any]:
        result: Any = self._src
        for key in self._path:
            result = result.get(key) if isinstance(result, Mapping) else None
        return result if isinstance(result, Mapping) else {}


class Meta(MappingView):

    def __init__(self, __src: Mapping[str, Any]) -> None:
        super().__init__(__src, 'metadata')

    @property
    def name(self) -> Optional[str]:
        return cast(Optional[str], self.get('name'))

    @property
    def namespace(self) -> references.Namespace:
        return cast(references.Namespace, self.get('namespace'))

    @property
    def generation(self) -> Optional[int]:
        return cast(Optional[int], self.get('generation'))

    @property
    def labels(self) -> Mapping[str, str]:
        return MappingView(self, 'labels')

    @property
    def annotations(self) -> Mapping[str, str]:
        return MappingView(self, 'annotations')


class Body(MappingView):
    """
    An immutable point-in-time snapshot of a resource's full state.

    The raw data are deep-copied at construction, so later modifications
    of the source (or of anything derived from it) are not visible here.
    """

    def __init__(self, __src: Mapping[str, Any]) -> None:
        super().__init__(copy.deepcopy(dict(__src)))
        self._meta = Meta(self._src)
        self._spec = MappingView(self._src, 'spec')
        self._status = MappingView(self._src, 'status')

    @property
    def metadata(self) -> Meta:
        return self._meta

    @property
    def meta(self) -> Meta:
        return self._meta

    @property
    def spec(self) -> Mapping[str, Any]:
        return self._spec

    @property
    def status(self) -> Mapping[str, Any]:
        return self._status


def is_of_resource(obj: object, resource: references.Resource) -> bool:
    """
    Check if a raw object from the API belongs to the specified resource.

    Only the kind and the API group are checked: the served version
    can differ from the requested one for some API servers.
    """
    if not isinstance(obj, Mapping):
        return False
    api_version = obj.get('apiVersion')
    if not isinstance(api_version, str):
        return False
    group = api_version.rsplit('/', 1)[0] if '/' in api_version else ''
    return group == resource.group and obj.get('kind') == resource.kind
