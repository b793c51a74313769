"""
Database configuration and engine management
"""

import os
import logging
from copy import deepcopy
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml
from jsonschema import validate, ValidationError as SchemaValidationError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL

from .exceptions import ConnectionError

logger = logging.getLogger(__name__)


SUPPORTED_DRIVERS = ('sqlite', 'duckdb', 'mysql', 'postgresql')

DRIVER_ALIASES = {
    'sqlite3': 'sqlite',
    'pgsql': 'postgresql',
    'postgres': 'postgresql',
    'mariadb': 'mysql',
}

# SQLAlchemy dialect+driver names used when building engine URLs
DRIVER_URLS = {
    'sqlite': 'sqlite',
    'duckdb': 'duckdb',
    'mysql': 'mysql+pymysql',
    'postgresql': 'postgresql+psycopg2',
}

REQUIRED_KEYS = {
    'sqlite': ('database',),
    'duckdb': ('database',),
    'mysql': ('database', 'host', 'user'),
    'postgresql': ('database', 'host', 'user'),
}

# Schema for YAML files holding several named connections
DATABASE_CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["current", "connections"],
    "properties": {
        "current": {"type": "string"},
        "connections": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": {
                "type": "object",
                "required": ["driver"],
                "properties": {
                    "driver": {"type": "string"},
                    "database": {"type": "string"},
                    "host": {"type": "string"},
                    "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                    "user": {"type": "string"},
                    "password": {"type": ["string", "null"]},
                    "debug": {"type": "boolean"},
                    "slow_query_threshold": {"type": "number", "minimum": 0},
                    "engine_args": {"type": "object"}
                }
            }
        }
    }
}

# Environment variables overriding credentials of the selected connection
ENV_MAPPINGS = {
    'password': 'FLUENTDB_DB_PASSWORD',
    'host': 'FLUENTDB_DB_HOST',
    'user': 'FLUENTDB_DB_USER',
}

SENSITIVE_KEYS = ('password', 'secret', 'token', 'credential')


class ConnectionConfig(BaseModel):
    """
    Connection settings supplied once at connect time.

    Required keys depend on the driver: file based drivers need only
    ``database``, server drivers also need ``host`` and ``user``.
    """

    model_config = ConfigDict(extra='ignore', frozen=True)

    driver: str = Field(..., description="Database driver name")
    database: Optional[str] = Field(None, description="Database name or file path")
    host: Optional[str] = Field(None, description="Server host")
    port: Optional[int] = Field(None, description="Server port")
    user: Optional[str] = Field(None, description="User name")
    password: Optional[str] = Field(None, description="User password", repr=False)
    debug: bool = Field(default=False, description="Keep a query log while connected")
    slow_query_threshold: float = Field(default=1.0, description="Log queries slower than this (seconds)")
    engine_args: Dict[str, Any] = Field(default_factory=dict, description="Extra create_engine arguments")

    @field_validator('driver', mode='before')
    @classmethod
    def validate_driver(cls, v):
        """Normalize driver aliases and reject unsupported drivers."""
        if not isinstance(v, str) or not v:
            raise ValueError('driver must be a non-empty string')
        driver = DRIVER_ALIASES.get(v.lower(), v.lower())
        if driver not in SUPPORTED_DRIVERS:
            raise ValueError(f"Unsupported database driver: {v}")
        return driver

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if v is not None and not 0 < v < 65536:
            raise ValueError('port must be between 1 and 65535')
        return v

    @field_validator('slow_query_threshold')
    @classmethod
    def validate_threshold(cls, v):
        if v < 0:
            raise ValueError('slow_query_threshold must not be negative')
        return v

    @model_validator(mode='after')
    def validate_required_keys(self):
        missing = [key for key in REQUIRED_KEYS[self.driver] if not getattr(self, key)]
        if missing:
            raise ValueError(
                f"Missing required keys for driver '{self.driver}': {', '.join(missing)}"
            )
        return self

    @classmethod
    def from_value(cls, value: Union['ConnectionConfig', Dict[str, Any]]) -> 'ConnectionConfig':
        """
        Build a config from a dict or pass an existing config through

        Raises:
            ConnectionError: If the config is malformed or names an unsupported driver
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            raise ConnectionError(f"Connection config must be a mapping, got {type(value).__name__}")
        try:
            return cls(**value)
        except ValidationError as e:
            messages = '; '.join(err['msg'] for err in e.errors())
            raise ConnectionError(f"Invalid connection config: {messages}") from e

    def engine_url(self) -> URL:
        """Build the SQLAlchemy URL for this config"""
        if self.driver in ('sqlite', 'duckdb'):
            return URL.create(DRIVER_URLS[self.driver], database=self.database)
        return URL.create(
            DRIVER_URLS[self.driver],
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    def engine_kwargs(self) -> Dict[str, Any]:
        """Engine arguments with driver defaults applied"""
        engine_args = dict(self.engine_args)
        engine_args.setdefault('pool_pre_ping', True)
        engine_args.setdefault('echo', False)
        return engine_args


class DatabaseConfig:
    """Configuration manager for database connections"""

    @staticmethod
    def get_engine(config: ConnectionConfig) -> Engine:
        """
        Create SQLAlchemy engine for a connection config

        Args:
            config: Validated connection config

        Returns:
            SQLAlchemy Engine instance
        """
        url = config.engine_url()
        logger.info(f"Creating {config.driver} engine: {url.render_as_string(hide_password=True)}")
        try:
            return create_engine(url, **config.engine_kwargs())
        except Exception as e:
            raise ConnectionError(f"Could not create {config.driver} engine: {e}") from e

    @staticmethod
    def get_default_config(driver: str, database: Optional[str] = None) -> Dict[str, Any]:
        """
        Get default configuration for a driver

        Args:
            driver: Database driver name
            database: Optional database file path or name

        Returns:
            Default configuration dictionary
        """
        if driver in ('sqlite', 'duckdb'):
            return {
                'driver': driver,
                'database': database or ':memory:',
                'debug': False,
                'engine_args': {
                    'pool_pre_ping': True,
                    'echo': False
                }
            }
        elif driver == 'mysql':
            return {
                'driver': 'mysql',
                'host': 'localhost',
                'port': 3306,
                'user': 'root',
                'password': '',
                'database': database or 'mysql',
                'debug': False,
                'engine_args': {
                    'pool_pre_ping': True,
                    'echo': False
                }
            }
        elif driver == 'postgresql':
            return {
                'driver': 'postgresql',
                'host': 'localhost',
                'port': 5432,
                'user': 'postgres',
                'password': '',
                'database': database or 'postgres',
                'debug': False,
                'engine_args': {
                    'pool_pre_ping': True,
                    'echo': False
                }
            }
        else:
            raise ConnectionError(f"Unsupported database driver: {driver}")


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML file {path}: {e}")
        raise ConnectionError(f"Failed to parse database config {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConnectionError(f"Config file must contain a dictionary, got {type(config).__name__}")
    return config


def load_database_config(path: Union[str, Path], name: Optional[str] = None) -> ConnectionConfig:
    """
    Load one named connection from a YAML file

    The file holds a ``current`` key naming the default connection and a
    ``connections`` mapping. Credentials may be overridden from the
    environment (see ENV_MAPPINGS).

    Args:
        path: Path to the YAML file
        name: Connection to select (defaults to ``current``)

    Returns:
        Validated ConnectionConfig
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Database config not found: {path}")

    raw = _load_yaml_file(path)
    try:
        validate(raw, DATABASE_CONFIG_SCHEMA)
    except SchemaValidationError as e:
        logger.error(f"Database config validation failed: {e.message}")
        raise ConnectionError(f"Invalid database config {path}: {e.message}") from e

    name = name or raw['current']
    if name not in raw['connections']:
        raise ConnectionError(f"Connection '{name}' not found in {path}")

    params = deepcopy(raw['connections'][name])
    for key, env_var in ENV_MAPPINGS.items():
        env_value = os.environ.get(env_var)
        if env_value:
            params[key] = env_value
            logger.info(f"Applied environment override for {name}.{key}")

    logger.debug(f"Loaded connection '{name}': {redact_config(params)}")
    return ConnectionConfig.from_value(params)


def redact_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of a config dict with sensitive values hidden"""
    redacted = deepcopy(config)
    for key, value in redacted.items():
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            redacted[key] = '***REDACTED***'
        elif isinstance(value, dict):
            redacted[key] = redact_config(value)
    return redacted
