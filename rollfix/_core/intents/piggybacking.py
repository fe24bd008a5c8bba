"""
Rudimentary login into the cluster for the fixtures.

rollfix is not a client library, and avoids bringing too much logic
for proper authentication, especially all the complex auth-providers.
Only the two most common cases are supported: a service account
(when the tests run in a pod) and a kubeconfig file (everywhere else).

.. seealso::
    :mod:`rollfix._cogs.structs.credentials`.
"""
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import credentials

# As per https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
SA_TOKEN_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/token'
SA_NAMESPACE_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/namespace'
SA_CA_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/ca.crt'

# Named items of a kubeconfig section (contexts, clusters, users), by their names.
_Sections = Dict[str, Mapping[str, Any]]


def login(*, logger: typedefs.Logger) -> credentials.ConnectionInfo:
    """
    Get the credentials from any of the supported sources, or fail.
    """
    info = login_with_service_account()
    if info is not None:
        logger.debug("Logged in with the in-cluster service account.")
        return info

    info = login_with_kubeconfig()
    if info is not None:
        logger.debug("Logged in with the kubeconfig file(s).")
        return info

    raise credentials.LoginError("Cannot login: neither a service account nor kubeconfig found.")


def login_with_service_account(**_: Any) -> Optional[credentials.ConnectionInfo]:
    """
    Login from inside a pod: with the token mounted into it, if any.
    """
    token = _read_secret(SA_TOKEN_PATH)
    if token is None:
        return None
    return credentials.ConnectionInfo(
        server='https://kubernetes.default.svc',
        ca_path=SA_CA_PATH if os.path.exists(SA_CA_PATH) else None,
        token=token or None,
        default_namespace=_read_secret(SA_NAMESPACE_PATH) or None,
    )


def _read_secret(path: str) -> Optional[str]:
    if not os.path.exists(path):
        return None
    with open(path, encoding='utf-8') as f:
        return f.read().strip()


def login_with_kubeconfig(**_: Any) -> Optional[credentials.ConnectionInfo]:
    """
    Login as ``kubectl`` does: with the current context of the kubeconfig file(s).

    Only the static credentials are supported: tokens, client certificates,
    basic auth. The exec-plugins and auth-providers' refreshes are not.
    """
    paths = _find_kubeconfigs()
    if not paths:
        return None

    current_context, contexts, clusters, users = _merge_kubeconfigs(paths)
    if current_context is None:
        raise credentials.LoginError('Current context is not set in kubeconfigs.')
    if current_context not in contexts:
        raise credentials.LoginError(f'Current context {current_context!r} is not defined.')

    context = contexts[current_context]
    cluster = clusters.get(context.get('cluster'), {})
    user = users.get(context.get('user'), {})

    # A token of the auth-provider is used as is, even if expired: there is no refresh.
    provider_token = ((user.get('auth-provider') or {}).get('config') or {}).get('access-token')

    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or provider_token,
        default_namespace=context.get('namespace'),
    )


def _find_kubeconfigs() -> List[str]:
    # $KUBECONFIG is a list of paths, same as $PATH; the absent files are skipped, as in kubectl.
    kubeconfig = os.environ.get('KUBECONFIG') or '~/.kube/config'
    paths = [os.path.expanduser(path.strip()) for path in kubeconfig.split(os.pathsep)]
    return [path for path in paths if path and os.path.exists(path)]


def _merge_kubeconfigs(paths: List[str]) -> Tuple[Optional[str], _Sections, _Sections, _Sections]:
    """
    Merge the kubeconfigs: the first file to set a value or a named item wins.

    The unreadable or broken files are not skipped: they fail the login.
    """
    current_context: Optional[str] = None
    sections: Dict[str, _Sections] = {'contexts': {}, 'clusters': {}, 'users': {}}
    for path in paths:
        try:
            with open(path, encoding='utf-8') as f:
                config = yaml.safe_load(f.read()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise credentials.LoginError(f"Cannot read the kubeconfig {path!r}: {e}") from e
        current_context = current_context or config.get('current-context')
        for section, items in sections.items():
            field = section[:-1]  # "contexts" -> "context", etc.
            for item in config.get(section) or []:
                items.setdefault(item['name'], item.get(field) or {})
    return current_context, sections['contexts'], sections['clusters'], sections['users']
