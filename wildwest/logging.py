"""
Wild West Frontend Logging

Small leveled console logger shared by the discovery, config and proxy
layers. Per-module log levels can be set from the environment so an operator
can turn up proxy tracing without touching the rest of the server.

Usage:
    from wildwest.logging import get_logger

    log = get_logger('proxy')
    log.debug("Forwarding request")
    log.info("Proxying /ws/* to backend:8080")
    log.error("Backend unreachable")

Configuration:
    Environment variables:
        WW_LOG_LEVEL=DEBUG        # Global default level
        WW_LOG_PROXY=DEBUG        # Module-specific level
        WW_LOG_DISCOVERY=WARNING

    Or programmatically:
        from wildwest.logging import configure_logging
        configure_logging(level='DEBUG', modules={'proxy': 'INFO'})

Messages at ERROR and above go to stderr, everything else to stdout.
"""

import os
import sys
import traceback
from enum import IntEnum
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""
    TRACE = 5      # Even more verbose than DEBUG
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50
    OFF = 100      # Disable logging


ENV_PREFIX = 'WW_LOG_'

# Global configuration
_config: Dict[str, Any] = {
    'default_level': LogLevel.INFO,
    'module_levels': {},
}


def _format_message(module: str, level: str, msg: str) -> str:
    """Format a log message."""
    return f"[{module}] {level}: {msg}"


def _level_from_string(level_str: str) -> LogLevel:
    """Convert string to LogLevel."""
    mapping = {
        'TRACE': LogLevel.TRACE,
        'DEBUG': LogLevel.DEBUG,
        'INFO': LogLevel.INFO,
        'WARNING': LogLevel.WARNING,
        'WARN': LogLevel.WARNING,
        'ERROR': LogLevel.ERROR,
        'CRITICAL': LogLevel.CRITICAL,
        'OFF': LogLevel.OFF,
    }
    return mapping.get(level_str.upper(), LogLevel.INFO)


def _module_key(module: str) -> str:
    return module.lower().replace('.', '_').replace('/', '_')


def configure_logging(
    level: str = 'INFO',
    modules: Optional[Dict[str, str]] = None,
) -> None:
    """
    Configure the logging system.

    Args:
        level: Default log level for all modules
        modules: Dict of module_name -> level for per-module configuration
    """
    _config['default_level'] = _level_from_string(level)

    if modules:
        for mod, mod_level in modules.items():
            _config['module_levels'][_module_key(mod)] = _level_from_string(mod_level)


def load_env_config(env: Optional[Mapping[str, str]] = None) -> None:
    """Load log levels from environment variables.

    WW_LOG_LEVEL sets the default, any other WW_LOG_<MODULE> sets the level
    for that module (WW_LOG_PROXY=DEBUG -> proxy: DEBUG).
    """
    if env is None:
        env = os.environ

    if 'WW_LOG_LEVEL' in env:
        _config['default_level'] = _level_from_string(env['WW_LOG_LEVEL'])

    for key, value in env.items():
        if key.startswith(ENV_PREFIX) and key != 'WW_LOG_LEVEL':
            module_name = key[len(ENV_PREFIX):].lower()
            _config['module_levels'][module_name] = _level_from_string(value)


# Load env config on import
load_env_config()


class WildWestLogger:
    """
    Logger for a specific module.

    Level is looked up on every call, so configure_logging() takes effect
    for loggers that already exist.
    """

    def __init__(self, module: str):
        self.module = module
        self._module_key = _module_key(module)

    @property
    def level(self) -> LogLevel:
        """Get effective log level for this module."""
        if self._module_key in _config['module_levels']:
            return _config['module_levels'][self._module_key]
        return _config['default_level']

    def is_enabled_for(self, level: LogLevel) -> bool:
        """Check if message at given level should be logged."""
        return level >= self.level

    def _log(self, level: LogLevel, level_name: str, msg: str, *args) -> None:
        """Internal log method."""
        if not self.is_enabled_for(level):
            return

        if args:
            try:
                msg = msg % args
            except (TypeError, ValueError):
                msg = f"{msg} {args}"

        formatted = _format_message(self.module, level_name, msg)
        stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout
        print(formatted, file=stream, flush=True)

    def trace(self, msg: str, *args) -> None:
        """Log at TRACE level (very verbose)."""
        self._log(LogLevel.TRACE, 'TRACE', msg, *args)

    def debug(self, msg: str, *args) -> None:
        """Log at DEBUG level."""
        self._log(LogLevel.DEBUG, 'DEBUG', msg, *args)

    def info(self, msg: str, *args) -> None:
        """Log at INFO level."""
        self._log(LogLevel.INFO, 'INFO', msg, *args)

    def warning(self, msg: str, *args) -> None:
        """Log at WARNING level."""
        self._log(LogLevel.WARNING, 'WARN', msg, *args)

    def warn(self, msg: str, *args) -> None:
        """Alias for warning()."""
        self.warning(msg, *args)

    def error(self, msg: str, *args) -> None:
        """Log at ERROR level."""
        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

    def critical(self, msg: str, *args) -> None:
        """Log at CRITICAL level."""
        self._log(LogLevel.CRITICAL, 'CRIT', msg, *args)

    def exception(self, msg: str, *args, exc: Optional[BaseException] = None) -> None:
        """
        Log an error followed by the traceback of an exception.

        Args:
            msg: Message describing what failed
            exc: Exception to log (uses the one being handled if None)
        """
        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

        if exc is not None:
            tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        else:
            tb = traceback.format_exc()
            if not tb or tb.strip() == 'NoneType: None':
                return
            tb_lines = tb.split('\n')

        for line in tb_lines:
            for part in line.rstrip('\n').split('\n'):
                if part.strip():
                    self._log(LogLevel.ERROR, 'TRACE', part)


@lru_cache(maxsize=64)
def get_logger(module: str) -> WildWestLogger:
    """
    Get a logger for the specified module.

    Loggers are cached, so calling get_logger('foo') multiple times
    returns the same logger instance.

    Args:
        module: Module name (e.g., 'discovery', 'config', 'proxy')
    """
    return WildWestLogger(module)


def reset_logging() -> None:
    """Drop programmatic configuration and return to INFO with no overrides."""
    _config['default_level'] = LogLevel.INFO
    _config['module_levels'] = {}


def disable_logging() -> None:
    """Disable all logging."""
    _config['default_level'] = LogLevel.OFF
    _config['module_levels'] = {}
