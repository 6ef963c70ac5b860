"""
Configuration and logging setup.

Settings come from an optional JSON or YAML file, then environment
variables override individual fields:

    MCPHOST_DATABASE_URL   database_url
    MCPHOST_LEGACY_CONFIG  legacy_config_path
    MCPHOST_LOG_LEVEL      log_level
    MCPHOST_LOG_FILE       log_file
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml

from .builtin.web_search import SearchConfig
from .connection.types import Root

LOG_FORMAT = '[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s'

DATA_DIR = os.path.join('~', '.mcphost')

ENV_OVERRIDES = {
    'MCPHOST_DATABASE_URL': 'database_url',
    'MCPHOST_LEGACY_CONFIG': 'legacy_config_path',
    'MCPHOST_LOG_LEVEL': 'log_level',
    'MCPHOST_LOG_FILE': 'log_file',
}


class ConfigError(ValueError):
    """Configuration file is unreadable or holds invalid values."""
    pass


class RobustFileHandler(logging.FileHandler):
    """FileHandler that gracefully handles flush errors on Windows"""

    def flush(self):
        """Flush the stream, ignoring EINVAL from stale Windows handles"""
        try:
            super().flush()
        except OSError as e:
            if e.errno != 22:  # EINVAL
                raise


def configure_logger(logger,
                     log_file=None,
                     log_format=LOG_FORMAT,
                     log_level=logging.INFO):
    """Configure a logger with a file or stream handler

    Stream output goes to stderr, never stdout, so it cannot be mistaken
    for protocol traffic when mcphost itself runs behind a pipe.

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_format: Format string for log messages
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)

    Returns:
        Configured logger instance
    """
    if isinstance(log_file, str):
        handler = RobustFileHandler(
            os.path.expanduser(log_file),
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger


@dataclass
class Settings:
    """
    Runtime settings.

    Attributes:
        database_url: SQLAlchemy URL or path of the server store
        legacy_config_path: Legacy mcp-servers.json imported on first run
        log_level: Logging level name
        log_file: Log file path (None logs to stderr)
        request_timeout: Handshake/discovery timeout in seconds
        tool_timeout: Default tool call timeout in seconds
        stop_timeout: Seconds a server gets to exit before it is killed
        progress_expiry: Seconds a completed progress entry is kept
        strict_schemas: Fail discovery on tools with invalid input schemas
        client_name: clientInfo.name sent to servers
        client_version: clientInfo.version sent to servers (package version if unset)
        workspace_roots: Roots answered to roots/list
        search: Web search settings
    """
    database_url: str = os.path.join(DATA_DIR, 'mcphost.db')
    legacy_config_path: Optional[str] = os.path.join(DATA_DIR, 'mcp-servers.json')
    log_level: str = 'info'
    log_file: Optional[str] = None
    request_timeout: float = 15.0
    tool_timeout: float = 60.0
    stop_timeout: float = 5.0
    progress_expiry: float = 2.0
    strict_schemas: bool = False
    client_name: str = 'mcphost'
    client_version: Optional[str] = None
    workspace_roots: List[Root] = field(default_factory=list)
    search: SearchConfig = field(default_factory=SearchConfig)

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        if not isinstance(level, int):
            raise ConfigError(f"Unknown log level: {self.log_level}")
        return level

    @classmethod
    def from_dict(cls, conf: Dict[str, Any]) -> 'Settings':
        """
        Build settings from a parsed configuration mapping.

        Raises:
            ConfigError: On unknown keys or values of the wrong type
        """
        known = {f.name for f in fields(cls)}
        unknown = set(conf) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        values = dict(conf)
        try:
            if 'search' in values:
                values['search'] = SearchConfig(**(values['search'] or {}))
            if 'workspace_roots' in values:
                values['workspace_roots'] = [
                    Root(uri=r) if isinstance(r, str) else Root(**r)
                    for r in values['workspace_roots'] or []
                ]
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        for name in ('request_timeout', 'tool_timeout', 'stop_timeout', 'progress_expiry'):
            if name in values:
                value = values[name]
                if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                    raise ConfigError(f"{name} must be a positive number")
                values[name] = float(value)

        settings = cls(**values)
        settings.log_level_value  # validates
        return settings


def load_settings(config_file: Optional[str] = None, environ=None) -> Settings:
    """Load settings from a JSON or YAML file and the environment

    Args:
        config_file: Path of a .json, .yaml or .yml file (None for defaults)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Settings instance

    Raises:
        ConfigError: If the file cannot be read or holds invalid values
    """
    environ = os.environ if environ is None else environ
    conf: Dict[str, Any] = {}

    if config_file:
        try:
            with open(os.path.expanduser(config_file), 'r', encoding='utf-8') as fp:
                if config_file.endswith(('.yaml', '.yml')):
                    conf = yaml.safe_load(fp) or {}
                else:
                    conf = json.load(fp)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file {config_file}: {e}") from e
        if not isinstance(conf, dict):
            raise ConfigError(f"Config file {config_file} must contain a mapping")

    for env_name, key in ENV_OVERRIDES.items():
        if environ.get(env_name):
            conf[key] = environ[env_name]

    return Settings.from_dict(conf)


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure the mcphost logger tree from settings"""
    return configure_logger(
        'mcphost',
        log_file=settings.log_file,
        log_level=settings.log_level_value,
    )
