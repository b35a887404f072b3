"""
Rudimentary login from the well-known sources of credentials.

The client does not implement the complex auth-providers or exec-plugins.
It only takes what is already available: the in-cluster service account,
or the raw fields of the kubeconfig files (including the access tokens
that are already stored there by the auth-providers).

.. seealso::
    :mod:`kubewire._cogs.structs.credentials`.
"""
import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from kubewire._cogs.structs import credentials

logger = logging.getLogger(__name__)

# As per https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
# Keep as constants to make them patchable.
SERVICE_ACCOUNT_TOKEN_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/token'
SERVICE_ACCOUNT_NAMESPACE_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/namespace'
SERVICE_ACCOUNT_CA_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/ca.crt'
IN_CLUSTER_SERVER = 'https://kubernetes.default.svc'
DEFAULT_KUBECONFIG = '~/.kube/config'

# The kubeconfig fields with paths, which are relative to the file where they are defined.
PATH_FIELDS: List[str] = ['certificate-authority', 'client-certificate', 'client-key', 'tokenFile']


def has_service_account() -> bool:
    return os.path.exists(SERVICE_ACCOUNT_TOKEN_PATH)


def has_kubeconfig() -> bool:
    env_var_set = bool(os.environ.get('KUBECONFIG'))
    file_exists = os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG))
    return env_var_set or file_exists


def login(context: Optional[str] = None) -> credentials.ConnectionInfo:
    """
    Log in with the first source of credentials found: a kubeconfig, then a service account.

    A kubeconfig goes first, so that a developer's explicit configuration
    overrides the pod's identity when both are present.
    """
    if has_kubeconfig():
        info = login_with_kubeconfig(context=context)
        if info is not None:
            logger.debug("Client is configured via kubeconfig file.")
            return info
    if context is None and has_service_account():
        info = login_with_service_account()
        if info is not None:
            logger.debug("Client is configured in cluster with service account.")
            return info
    raise credentials.LoginError("Cannot authenticate neither in-cluster, nor via kubeconfig.")


def login_with_service_account() -> Optional[credentials.ConnectionInfo]:
    """
    A minimalistic login that can get raw data from a service account.

    The server is taken from the environment variables as exposed to the pods,
    or from the cluster's DNS name if they are absent.
    """
    if not os.path.exists(SERVICE_ACCOUNT_TOKEN_PATH):
        return None

    with open(SERVICE_ACCOUNT_TOKEN_PATH, encoding='utf-8') as f:
        token = f.read().strip()

    namespace: Optional[str] = None
    if os.path.exists(SERVICE_ACCOUNT_NAMESPACE_PATH):
        with open(SERVICE_ACCOUNT_NAMESPACE_PATH, encoding='utf-8') as f:
            namespace = f.read().strip()

    host = os.environ.get('KUBERNETES_SERVICE_HOST')
    port = os.environ.get('KUBERNETES_SERVICE_PORT')
    if host and ':' in host:  # IPv6
        host = f'[{host}]'
    server = f'https://{host}:{port or 443}' if host else IN_CLUSTER_SERVER

    return credentials.ConnectionInfo(
        server=server,
        ca_path=SERVICE_ACCOUNT_CA_PATH if os.path.exists(SERVICE_ACCOUNT_CA_PATH) else None,
        token=token or None,
        default_namespace=namespace or None,
    )


def login_with_kubeconfig(context: Optional[str] = None) -> Optional[credentials.ConnectionInfo]:
    """
    A minimalistic login that can get raw data from the kubeconfig files.

    The files are taken from ``$KUBECONFIG`` (a list of paths) or ``~/.kube/config``.
    As prescribed for the merging, the first value found wins.

    The requested context is used, or the current one, or the only one
    if there is exactly one context and none is marked as current.
    """

    # As per https://kubernetes.io/docs/concepts/configuration/organize-cluster-access-kubeconfig/
    kubeconfig = os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
        kubeconfig = DEFAULT_KUBECONFIG
    if not kubeconfig:
        return None

    paths = [path.strip() for path in kubeconfig.split(os.pathsep)]
    paths = [os.path.expanduser(path) for path in paths if path]

    # As prescribed: if the file is absent or non-deserialisable, then fail. The first value wins.
    current_context: Optional[str] = None
    contexts: Dict[Any, Any] = {}
    clusters: Dict[Any, Any] = {}
    users: Dict[Any, Any] = {}
    for path in paths:
        try:
            with open(path, encoding='utf-8') as f:
                config = yaml.safe_load(f.read()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise credentials.LoginError(f"Cannot read the kubeconfig {path!r}: {e}") from e

        # Relative paths in the files are relative to the file itself.
        base = os.path.dirname(os.path.abspath(path))
        if current_context is None:
            current_context = config.get('current-context') or None
        for item in config.get('contexts') or []:
            if item['name'] not in contexts:
                contexts[item['name']] = item.get('context') or {}
        for item in config.get('clusters') or []:
            if item['name'] not in clusters:
                clusters[item['name']] = _resolve_paths(item.get('cluster') or {}, base)
        for item in config.get('users') or []:
            if item['name'] not in users:
                users[item['name']] = _resolve_paths(item.get('user') or {}, base)

    # Once fully parsed, use the selected context only.
    selected = context or current_context
    if selected is None and len(contexts) == 1:
        selected, = contexts
    if selected is None:
        raise credentials.LoginError("Current context is not set in kubeconfigs.")
    if selected not in contexts:
        raise credentials.LoginError(f"Context {selected!r} is not found in kubeconfigs.")
    ctx = contexts[selected]
    if ctx.get('cluster') not in clusters:
        raise credentials.LoginError(f"Cluster {ctx.get('cluster')!r} is not found in kubeconfigs.")
    cluster = clusters[ctx['cluster']]
    user = users.get(ctx.get('user'), {})
    if not cluster.get('server'):
        raise credentials.LoginError(f"Cluster {ctx['cluster']!r} has no server.")

    # The tokens of the auth-providers are used as they are, without refreshing.
    provider_token = (user.get('auth-provider') or {}).get('config', {}).get('access-token')
    token: Optional[str] = user.get('token') or provider_token
    if not token and user.get('tokenFile'):
        with open(user['tokenFile'], encoding='utf-8') as f:
            token = f.read().strip()

    # Map the retrieved fields into the credentials object.
    return credentials.ConnectionInfo(
        server=cluster['server'],
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=token or None,
        default_namespace=ctx.get('namespace'),
    )


def _resolve_paths(section: Dict[str, Any], base: str) -> Dict[str, Any]:
    resolved = dict(section)
    for field in PATH_FIELDS:
        value = resolved.get(field)
        if isinstance(value, str) and value:
            resolved[field] = os.path.join(base, os.path.expanduser(value))
    return resolved
