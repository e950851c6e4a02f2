"""
Configuration support for Folio.

Provides:
- Config dataclasses for the server, database, storage, session and public view
- TOML config file loading (folio.toml)
- Precedence: environment variables > config file > defaults
- Secret key resolution (environment, state file, generated)
"""

import logging
import os
import secrets
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

# Python 3.11+ has tomllib in stdlib, earlier versions need tomli
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "folio.toml"

# State directory for generated secrets
STATE_DIR_NAME = ".folio"
SECRET_FILE_NAME = "web_secret"

SUPPORTED_LOCALES = ("en", "id")


@dataclass
class ServerConfig:
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False
    secret_key: Optional[str] = None


@dataclass
class DatabaseConfig:
    """Database configuration."""

    url: str = "sqlite:///data/folio.db"


@dataclass
class StorageConfig:
    """Object storage configuration."""

    root: str = "data/storage"
    url_prefix: str = "/storage"
    max_upload_bytes: int = 1024 * 1024


@dataclass
class SessionConfig:
    """Authenticated session configuration."""

    lifetime_seconds: int = 60 * 60
    keep_alive_seconds: float = 5 * 60


@dataclass
class PublicConfig:
    """Public view configuration."""

    owner_user_id: Optional[str] = None
    locale: str = "en"
    section_timeout_seconds: float = 2.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"
    log_file: Optional[str] = None


@dataclass
class Config:
    """Complete configuration for Folio."""

    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    public: PublicConfig = field(default_factory=PublicConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    config_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config_path: Optional[Path] = None) -> "Config":
        """Create Config from a dictionary (parsed TOML)."""
        server_data = data.get("server", {})
        database_data = data.get("database", {})
        storage_data = data.get("storage", {})
        session_data = data.get("session", {})
        public_data = data.get("public", {})
        logging_data = data.get("logging", {})

        try:
            config = cls(
                server=ServerConfig(
                    host=server_data.get("host", "127.0.0.1"),
                    port=int(server_data.get("port", 5000)),
                    debug=bool(server_data.get("debug", False)),
                    secret_key=server_data.get("secret_key"),
                ),
                database=DatabaseConfig(
                    url=database_data.get("url", DatabaseConfig.url),
                ),
                storage=StorageConfig(
                    root=storage_data.get("root", StorageConfig.root),
                    url_prefix=storage_data.get("url_prefix", StorageConfig.url_prefix),
                    max_upload_bytes=int(storage_data.get("max_upload_bytes", StorageConfig.max_upload_bytes)),
                ),
                session=SessionConfig(
                    lifetime_seconds=int(session_data.get("lifetime_seconds", SessionConfig.lifetime_seconds)),
                    keep_alive_seconds=float(session_data.get("keep_alive_seconds", SessionConfig.keep_alive_seconds)),
                ),
                public=PublicConfig(
                    owner_user_id=public_data.get("owner_user_id"),
                    locale=public_data.get("locale", "en"),
                    section_timeout_seconds=float(
                        public_data.get("section_timeout_seconds", PublicConfig.section_timeout_seconds)
                    ),
                ),
                logging=LoggingConfig(
                    level=logging_data.get("level", "WARNING"),
                    log_file=logging_data.get("log_file"),
                ),
                config_path=config_path,
            )
        except (AttributeError, TypeError, ValueError) as e:
            source = config_path or "config"
            raise ConfigError(f"Invalid value in {source}: {e}")
        config.validate()
        return config

    def validate(self) -> None:
        """Reject values the app cannot run with."""
        if self.public.locale not in SUPPORTED_LOCALES:
            raise ConfigError(
                f"Unsupported locale '{self.public.locale}'. Choose one of: {', '.join(SUPPORTED_LOCALES)}"
            )
        if self.session.keep_alive_seconds <= 0:
            raise ConfigError("session.keep_alive_seconds must be positive")
        if self.session.lifetime_seconds <= 0:
            raise ConfigError("session.lifetime_seconds must be positive")
        if self.storage.max_upload_bytes <= 0:
            raise ConfigError("storage.max_upload_bytes must be positive")


class ConfigError(ConfigurationError):
    """Error loading or parsing configuration."""


def find_config_file(config_path: Optional[Path] = None) -> Optional[Path]:
    """
    Find the configuration file.

    Search order:
    1. Explicit path if provided
    2. folio.toml in current directory

    Args:
        config_path: Explicit path to config file.

    Returns:
        Path to config file, or None if not found.
    """
    if config_path is not None:
        if config_path.exists():
            return config_path
        raise ConfigError(f"Config file not found: {config_path}")

    cwd_config = Path.cwd() / DEFAULT_CONFIG_NAME
    if cwd_config.exists():
        return cwd_config

    return None


def apply_env_overrides(config: Config, environ: Optional[Dict[str, str]] = None) -> Config:
    """
    Apply FOLIO_* environment variables on top of a loaded config.

    Args:
        config: The config to update in place.
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        The same config object.
    """
    env = os.environ if environ is None else environ

    if env.get("FOLIO_DATABASE_URL"):
        config.database.url = env["FOLIO_DATABASE_URL"]
    if env.get("FOLIO_SECRET_KEY"):
        config.server.secret_key = env["FOLIO_SECRET_KEY"].strip()
    if env.get("FOLIO_STORAGE_DIR"):
        config.storage.root = env["FOLIO_STORAGE_DIR"]
    if env.get("FOLIO_PUBLIC_USER_ID"):
        config.public.owner_user_id = env["FOLIO_PUBLIC_USER_ID"].strip()
    if env.get("FOLIO_LOCALE"):
        config.public.locale = env["FOLIO_LOCALE"].strip()
    if env.get("FOLIO_KEEP_ALIVE_SECONDS"):
        try:
            config.session.keep_alive_seconds = float(env["FOLIO_KEEP_ALIVE_SECONDS"])
        except ValueError:
            raise ConfigError(
                f"FOLIO_KEEP_ALIVE_SECONDS must be a number, got {env['FOLIO_KEEP_ALIVE_SECONDS']!r}"
            )

    config.validate()
    return config


def load_config(config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> Config:
    """
    Load configuration from a TOML file and the environment.

    If no config file is found, defaults are used.

    Args:
        config_path: Optional explicit path to config file.
        environ: Optional environment mapping (tests pass their own).

    Returns:
        Config object with loaded or default values.

    Raises:
        ConfigError: If config file exists but cannot be parsed.
    """
    config_file = find_config_file(config_path)

    if config_file is None:
        logger.debug("No config file found, using defaults")
        return apply_env_overrides(Config(), environ)

    logger.debug(f"Loading config from: {config_file}")

    try:
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_file}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_file}: {e}")

    config = Config.from_dict(data, config_path=config_file)
    logger.info(f"Loaded config from: {config_file}")
    return apply_env_overrides(config, environ)


def get_secret_key(config: Config, state_dir: Optional[Path] = None) -> str:
    """
    Get the Flask secret key with the following precedence:
    1. server.secret_key (config file or FOLIO_SECRET_KEY)
    2. State file .folio/web_secret
    3. Generate new random key and save to state file

    Returns:
        A secret key string for Flask session management.
    """
    if config.server.secret_key:
        return config.server.secret_key

    state_dir = state_dir or (Path.cwd() / STATE_DIR_NAME)
    secret_file = state_dir / SECRET_FILE_NAME

    if secret_file.exists():
        try:
            saved_secret = secret_file.read_text().strip()
            if saved_secret:
                logger.info("Using secret key from state file")
                return saved_secret
        except OSError as e:
            logger.warning(f"Could not read secret key file: {e}")

    logger.info("Generating new secret key")
    new_secret = secrets.token_urlsafe(32)
    try:
        state_dir.mkdir(parents=True, exist_ok=True)
        secret_file.write_text(new_secret)
        secret_file.chmod(0o600)
    except OSError as e:
        logger.warning(f"Could not save secret key to disk: {e}")
        logger.warning("Using ephemeral secret key (sessions won't persist)")
    return new_secret
