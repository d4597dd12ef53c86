"""
Linked component discovery.

A linked backend service shows up in the environment as a pair of variables:

    COMPONENT_<NAME>_HOST=backend
    COMPONENT_<NAME>_PORT=8080

Only names with both variables set (and non-empty) count as components. One
component is then selected as "the" backend, unless BACKEND_SERVICE overrides
discovery entirely.
"""

import os
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional

from wildwest.logging import get_logger

log = get_logger('discovery')

_HOST_KEY = re.compile(r'COMPONENT_(?P<name>.+)_HOST')

BACKEND_SERVICE = 'BACKEND_SERVICE'
BACKEND_COMPONENT_NAME = 'BACKEND_COMPONENT_NAME'


@dataclass(frozen=True)
class Component:
    """A linked service discovered from COMPONENT_<NAME>_HOST/_PORT."""
    name: str
    host: str
    port: str

    @property
    def url(self) -> str:
        """Backend host string in host:port form."""
        return f"{self.host}:{self.port}"


def _host_key(name: str) -> str:
    return f"COMPONENT_{name}_HOST"


def _port_key(name: str) -> str:
    return f"COMPONENT_{name}_PORT"


def find_components(env: Optional[Mapping[str, str]] = None) -> List[str]:
    """
    Find linked component names in an environment mapping.

    Names come back in the mapping's iteration order. A name whose HOST or
    PORT variable is missing or empty is skipped.

    Args:
        env: Environment mapping (default: os.environ)

    Returns:
        List of component names, possibly empty
    """
    if env is None:
        env = os.environ

    components: List[str] = []
    for key in env:
        match = _HOST_KEY.fullmatch(key)
        if not match:
            continue
        name = match.group('name')
        if env[key] and env.get(_port_key(name)) and name not in components:
            components.append(name)

    log.debug("Found components: %s", components)
    return components


def discover(env: Optional[Mapping[str, str]] = None) -> List[Component]:
    """Like find_components(), but returns full Component records."""
    if env is None:
        env = os.environ
    return [
        Component(name=name, host=env.get(_host_key(name), ''), port=env[_port_key(name)])
        for name in find_components(env)
    ]


def select_component(env: Mapping[str, str], components: List[str]) -> Optional[str]:
    """
    Pick the backend component from the discovered names.

    BACKEND_COMPONENT_NAME wins when its upper-cased value was discovered,
    otherwise the first discovered component is used.

    Returns:
        Component name, or None if nothing was discovered
    """
    if not components:
        return None

    requested = env.get(BACKEND_COMPONENT_NAME)
    if requested is not None:
        if requested.upper() in components:
            return requested.upper()
        log.warning(
            f"BACKEND_COMPONENT_NAME={requested!r} does not match a linked component "
            f"{components}, using {components[0]!r}"
        )

    return components[0]


def component_url(env: Mapping[str, str], name: str) -> str:
    """Build the "<HOST>:<PORT>" backend string for a component."""
    return f"{env.get(_host_key(name), '')}:{env.get(_port_key(name), '')}"


def select_backend(
    env: Optional[Mapping[str, str]] = None,
    components: Optional[List[str]] = None,
) -> Optional[str]:
    """
    Resolve the backend host string.

    Precedence (highest wins):
        1. BACKEND_SERVICE, used verbatim
        2. BACKEND_COMPONENT_NAME, if it names a discovered component
        3. The first discovered component

    Args:
        env: Environment mapping (default: os.environ)
        components: Discovered names (default: find_components(env))

    Returns:
        Backend host string, or None when unresolved
    """
    if env is None:
        env = os.environ

    override = env.get(BACKEND_SERVICE)
    if override:
        return override

    if components is None:
        components = find_components(env)

    name = select_component(env, components)
    if name is None:
        return None
    return component_url(env, name)
