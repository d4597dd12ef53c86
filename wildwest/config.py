"""
Server configuration assembled from the environment.

autoconfig() is called once at startup and returns an immutable
ResolvedConfig. The server and the proxy receive that object explicitly;
nothing here reads module-level state after construction.

Environment variables:
    COMPONENT_<NAME>_HOST/_PORT  Linked backend components
    BACKEND_COMPONENT_NAME       Pick a linked component by name
    BACKEND_SERVICE              Backend host override (skips discovery)
    BACKEND_PATH                 Proxy mount path (default: /ws)
    URL_PREFIX                   Frontend mount path (default: /)
    PORT, IP / BIND_IP           Listen address
    HOSTNAME, APP_NAME           Reported by /status and /hostname
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from wildwest.discovery import (
    BACKEND_COMPONENT_NAME,
    component_url,
    find_components,
    select_backend,
    select_component,
)
from wildwest.logging import get_logger

log = get_logger('config')

DEFAULT_FRONTEND_PATH = '/'
DEFAULT_BACKEND_PATH = '/ws'

CONFIG_ERROR = {'Error': "Backend Component Not Configured"}

# Dev defaults used when no platform variable is set
DEV_DEFAULTS = {
    'PORT': 8080,
    'IP': '0.0.0.0',
    'HOSTNAME': 'localhost',
    'APP_NAME': 'APP_NAME',
}


# =============================================================================
# Path normalization
# =============================================================================

def normalize_frontend_path(path: Optional[str] = None) -> str:
    """
    Normalize the frontend mount path.

    Always starts with "/"; non-root paths always end with "/".

    >>> normalize_frontend_path('/app')
    '/app/'
    >>> normalize_frontend_path('/')
    '/'
    """
    path = path or DEFAULT_FRONTEND_PATH
    if not path.startswith('/'):
        path = '/' + path
    if len(path) > 1 and not path.endswith('/'):
        path += '/'
    return path


def strip_frontend_slash(frontend_path: str) -> Optional[str]:
    """Frontend path without its trailing slash, or None for the root."""
    if len(frontend_path) > 1:
        return frontend_path[:-1]
    return None


def normalize_backend_path(path: Optional[str] = None) -> str:
    """
    Normalize the proxy mount path.

    Trailing slashes are stripped. A path that strips down to nothing
    falls back to the default.

    >>> normalize_backend_path('/ws/')
    '/ws'
    """
    path = (path or DEFAULT_BACKEND_PATH).rstrip('/')
    if not path:
        return DEFAULT_BACKEND_PATH
    if not path.startswith('/'):
        path = '/' + path
    return path


# =============================================================================
# Platform settings
# =============================================================================

class PlatformSettings(BaseModel):
    """Listen address and identity of this server.

    Attributes:
        port: TCP port to listen on
        ip: Interface to bind
        hostname: Public hostname reported by /status
        app_name: Application name
    """
    port: int = Field(default=DEV_DEFAULTS['PORT'], gt=0, lt=65536)
    ip: str = DEV_DEFAULTS['IP']
    hostname: str = DEV_DEFAULTS['HOSTNAME']
    app_name: str = DEV_DEFAULTS['APP_NAME']

    model_config = ConfigDict(frozen=True)


def _service_key(build_name: str) -> str:
    """OPENSHIFT_BUILD_NAME "ww-frontend-3" -> service prefix "WW_FRONTEND"."""
    return re.sub(r'-\d+$', '', build_name).upper().replace('-', '_')


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


def _parse_port(value: Optional[str], source: str) -> Optional[int]:
    """Port number from an environment value, or None if it is not usable."""
    if not value:
        return None
    try:
        port = int(value)
    except ValueError:
        log.warning("Ignoring %s=%r: not a port number", source, value)
        return None
    if not 0 < port < 65536:
        log.warning("Ignoring %s=%r: port out of range", source, value)
        return None
    return port


def resolve_platform(env: Optional[Mapping[str, str]] = None) -> PlatformSettings:
    """
    Resolve listen address and identity from platform variables.

    Precedence: OpenShift v3 / Kubernetes service variables, then OpenShift
    v2 variables, then generic cloud variables, then dev defaults.
    Empty values fall through to the next source, as do ports that are not
    a number in 1-65535 (with a warning).
    """
    if env is None:
        env = os.environ

    port_sources = []
    build_name = env.get('OPENSHIFT_BUILD_NAME')
    if build_name:
        port_sources.append(f"{_service_key(build_name)}_SERVICE_PORT")
    port_sources += ['OPENSHIFT_NODEJS_PORT', 'PORT']

    port = None
    for source in port_sources:
        port = _parse_port(env.get(source), source)
        if port is not None:
            break

    ip = _first(env.get('OPENSHIFT_NODEJS_IP'), env.get('IP'), env.get('BIND_IP'))
    hostname = _first(env.get('OPENSHIFT_APP_DNS'), env.get('HOSTNAME'))
    app_name = _first(
        env.get('OPENSHIFT_BUILD_NAMESPACE'),
        env.get('OPENSHIFT_APP_NAME'),
        env.get('APP_NAME'),
    )

    return PlatformSettings(
        port=port if port is not None else DEV_DEFAULTS['PORT'],
        ip=ip or DEV_DEFAULTS['IP'],
        hostname=hostname or DEV_DEFAULTS['HOSTNAME'],
        app_name=app_name or DEV_DEFAULTS['APP_NAME'],
    )


# =============================================================================
# Resolved configuration
# =============================================================================

class ResolvedConfig(BaseModel):
    """Configuration consumed by the frontend server and the proxy.

    Built once by autoconfig() and never mutated.

    Attributes:
        frontend_path: Mount path for the HTML shell ("/" or "/prefix/")
        no_slash_frontend: frontend_path without trailing slash (None at root)
        path_info: Operator-facing description of the frontend path
        components: Linked component names in discovery order
        backend_component_name: Raw BACKEND_COMPONENT_NAME value, if set
        backend_path: Proxy mount path, no trailing slash
        backend_component: Selected component name
        backend_component_url: Selected component's host:port
        backend_host: Proxy target (BACKEND_SERVICE or backend_component_url)
        backend_config_error: Error record when no backend could be resolved
        backend_config_info: Operator-facing description of the proxy target
        platform: Listen address and identity
    """
    frontend_path: str = DEFAULT_FRONTEND_PATH
    no_slash_frontend: Optional[str] = None
    path_info: str = ''
    components: List[str] = Field(default_factory=list)
    backend_component_name: Optional[str] = None
    backend_path: str = DEFAULT_BACKEND_PATH
    backend_component: Optional[str] = None
    backend_component_url: Optional[str] = None
    backend_host: Optional[str] = None
    backend_config_error: Optional[Dict[str, str]] = None
    backend_config_info: str = ''
    platform: PlatformSettings = Field(default_factory=PlatformSettings)

    model_config = ConfigDict(frozen=True)

    @property
    def backend_configured(self) -> bool:
        """True if the proxy has somewhere to send requests."""
        return bool(self.backend_host)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a field by name, falling back to platform settings."""
        key = key.lower()
        if key in type(self).model_fields:
            value = getattr(self, key)
        elif key in PlatformSettings.model_fields:
            value = getattr(self.platform, key)
        else:
            return default
        return default if value is None else value


def autoconfig(
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ResolvedConfig:
    """
    Build the server configuration from an environment mapping.

    A missing backend is a configuration error, not an exception: it is
    logged and recorded in backend_config_error so the server can still
    start and serve the frontend.

    Overrides replace the values read from the environment before the
    dependent fields are derived, so overriding backend_host also clears
    backend_config_error and rewrites backend_config_info. Override paths
    are normalized like URL_PREFIX and BACKEND_PATH.

    Args:
        env: Environment mapping (default: os.environ)
        overrides: Field values that replace the computed ones

    Returns:
        The resolved configuration
    """
    if env is None:
        env = os.environ
    overrides = dict(overrides or {})

    components = find_components(env)
    backend_component = select_component(env, components)
    backend_component_url = None
    if backend_component is not None:
        backend_component_url = component_url(env, backend_component)

    fields: Dict[str, Any] = {
        'frontend_path': env.get('URL_PREFIX'),
        'components': components,
        'backend_component_name': env.get(BACKEND_COMPONENT_NAME),
        'backend_path': env.get('BACKEND_PATH'),
        'backend_component': backend_component,
        'backend_component_url': backend_component_url,
        'backend_host': select_backend(env, components),
        'platform': resolve_platform(env),
    }
    fields.update(overrides)

    frontend_path = fields['frontend_path'] = normalize_frontend_path(fields['frontend_path'])
    backend_path = fields['backend_path'] = normalize_backend_path(fields['backend_path'])
    backend_host = fields['backend_host']

    derived = {
        'no_slash_frontend': strip_frontend_slash(frontend_path),
        'path_info': f"Frontend available at URL_PREFIX: {frontend_path}",
        'backend_config_error': None if backend_host else dict(CONFIG_ERROR),
        'backend_config_info': f"Proxying \"{backend_path}/*\" to '{backend_host}'",
    }
    for key, value in derived.items():
        fields.setdefault(key, value)

    config = ResolvedConfig(**fields)

    if not config.backend_configured:
        log.error(
            "CONFIG ERROR: Can't find backend webservices component!\n"
            "Use `odo link` to link your front-end component to a backend component, "
            "or set BACKEND_SERVICE."
        )
    log.info(config.path_info)
    log.info(config.backend_config_info)

    return config


def load_env_file(path: Union[str, Path, None] = None) -> bool:
    """
    Load a .env file into the process environment.

    Variables already set in the environment are left alone.

    Returns:
        True if a file was found and loaded
    """
    env_path = Path(path) if path else Path.cwd() / '.env'
    if not env_path.is_file():
        if path:
            log.warning(f"Env file not found: {env_path}")
        else:
            log.debug(f"No env file at {env_path}")
        return False
    loaded = load_dotenv(env_path, override=False)
    log.info(f"Loaded environment from {env_path}")
    return loaded
