"""
Loading the manifests from YAML and serialising them for the API.

The manifests are kept as plain dicts all the way from the YAML texts
to the API calls; no typed models of the objects are involved.
"""
import json
from typing import Any, Iterable, List, Mapping

import yaml


class ManifestError(Exception):
    """ Raised when the manifests cannot be parsed or are not the K8s objects. """


class SerializationError(Exception):
    """ Raised when an object cannot be serialised for sending to the API. """


def load_manifests(text: str) -> List[Any]:
    """
    Parse a multi-document YAML text into a list of objects; skip empty documents.
    """
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise ManifestError(f"Cannot parse the manifests: {e}") from e

    objs: List[Any] = []
    for document in documents:
        if document is None:
            continue
        if not isinstance(document, Mapping) or 'kind' not in document:
            raise ManifestError(f"Not a Kubernetes object: {document!r}")
        objs.append(document)
    return objs


def load_manifest_files(paths: Iterable[str]) -> List[Any]:
    objs: List[Any] = []
    for path in paths:
        with open(path, encoding='utf-8') as f:
            objs.extend(load_manifests(f.read()))
    return objs


def serialize(obj: Any) -> bytes:
    # Note: YAML timestamps are parsed into datetimes, which JSON does not support.
    try:
        return json.dumps(obj, separators=(',', ':')).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialise the object: {e}") from e
