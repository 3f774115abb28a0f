import logging
import os
from collections.abc import Mapping

from keepwire._models import ProxyConfig

logger = logging.getLogger(__name__)


PROXY_ENV_VAR = 'http_proxy'
DEFAULT_PROXY_PORT = 8080


def _parse_port(port: int | str | None) -> int | str:
    if port is None or port == '':
        return DEFAULT_PROXY_PORT
    if isinstance(port, str) and port.isdigit():
        return int(port)
    return port


def resolve_proxy(
    proxy_host: str | None = None,
    proxy_port: int | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProxyConfig | None:
    '''
    Decide whether requests go through an HTTP proxy.

    Explicit parameters win; otherwise the `http_proxy` environment
    variable is read as `host:port`. Malformed values are not rejected
    here, they surface later as a connection failure.

    Parameters
    ----------
    proxy_host : str | None, optional
    proxy_port : int | str | None, optional
        Defaults to 8080 when a host is known but no port is.
    environ : Mapping[str, str] | None, optional
        The environment to read, by default `os.environ`

    Returns
    -------
    ProxyConfig | None
    '''
    if proxy_host:
        return ProxyConfig(host=proxy_host, port=_parse_port(proxy_port))

    env_value = (os.environ if environ is None else environ).get(PROXY_ENV_VAR)
    if not env_value:
        return None

    host, _, port = env_value.partition(':')
    proxy = ProxyConfig(host=host, port=_parse_port(port))
    logger.debug(f'Using proxy {proxy.host}:{proxy.port} from ${PROXY_ENV_VAR}')
    return proxy
