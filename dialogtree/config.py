"""Application configuration read from and written to YAML files."""

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_SETTINGS_PATH = "settings.yaml"


class ConfigError(ValueError):
    """Raised when a configuration document cannot be understood."""


def _yaml_name(attribute: str) -> str:
    """Return the camelCase key that a snake_case attribute has in YAML."""
    head, *rest = attribute.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass
class SystemConfig:
    mode: str = ""
    ip: str = ""
    port: str = ""
    env: str = ""
    gin_mode: str = ""

    def addr(self) -> str:
        """Return host:port, with localhost when no IP is configured."""
        host = self.ip or "localhost"
        return f"{host}:{self.port}"


@dataclass
class LogrusConfig:
    app: str = ""
    dir: str = ""


@dataclass
class DBConfig:
    name: str = ""
    user: str = ""
    password: str = ""
    host: str = ""
    port: int = 0
    dbname: str = ""
    debug: bool = False
    source: str = ""

    def _dsn(self, database: str) -> str:
        if self.source == "mysql":
            return (
                f"{self.user}:{self.password}@tcp({self.host}:{self.port})/{database}"
                "?charset=utf8mb4&parseTime=true&loc=Local"
            )
        if self.source == "pgsql":
            return (
                f"user={self.user} password={self.password} host={self.host} "
                f"port={self.port} dbname={database} sslmode=disable"
            )
        return "unsupported db source"

    def dsn(self) -> str:
        """Connection string for the configured database."""
        return self._dsn(self.dbname)

    def dsn_without_db(self) -> str:
        """Connection string for the server's maintenance database."""
        return self._dsn("postgres")


@dataclass
class RedisConfig:
    addr: str = ""
    password: str = ""
    db: int = 0


@dataclass
class ChatAnywhereConfig:
    model: str = ""
    secret_key: str = ""


@dataclass
class BackendAiConfig:
    model: str = ""
    secret_key: str = ""


@dataclass
class AiConfig:
    enable: bool = False
    nickname: str = ""
    avatar: str = ""
    abstract: str = ""
    chat_anywhere: ChatAnywhereConfig = field(default_factory=ChatAnywhereConfig)
    backend_ai: BackendAiConfig = field(default_factory=BackendAiConfig)


def _convert(value: Any, kind: Any, where: str) -> Any:
    if isinstance(kind, type) and dataclasses.is_dataclass(kind):
        return _from_mapping(kind, value, where)
    if value is None:
        return kind()
    if kind is bool:
        if isinstance(value, bool):
            return value
    elif kind is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif kind is str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (str, int, float)):
            return str(value)
    raise ConfigError(f"{where}: cannot use {value!r} as {kind.__name__}")


def _from_mapping(cls: type, data: Any, where: str) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ConfigError(f"{where or 'document'}: expected a mapping, got {data!r}")
    values = {}
    for spec in dataclasses.fields(cls):
        key = _yaml_name(spec.name)
        if key in data:
            path = f"{where}.{key}" if where else key
            values[spec.name] = _convert(data[key], spec.type, path)
    return cls(**values)


def _to_mapping(obj: Any) -> dict:
    result = {}
    for spec in dataclasses.fields(obj):
        value = getattr(obj, spec.name)
        if dataclasses.is_dataclass(value):
            value = _to_mapping(value)
        result[_yaml_name(spec.name)] = value
    return result


@dataclass
class Config:
    system: SystemConfig = field(default_factory=SystemConfig)
    logrus: LogrusConfig = field(default_factory=LogrusConfig)
    db: DBConfig = field(default_factory=DBConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    ai: AiConfig = field(default_factory=AiConfig)

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> "Config":
        """Build a configuration from a parsed YAML document."""
        return _from_mapping(cls, data, "")

    def to_dict(self) -> dict:
        """Return the configuration as a YAML-ready mapping."""
        return _to_mapping(self)


def read_conf(quiet: bool = True, path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Config:
    """Read and parse the configuration file; raise if it cannot be read."""
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"yaml unmarshal err: {exc}") from exc
    config = Config.from_dict(data)
    if not quiet:
        print(f"configuration of: {path} success!")
    return config


def set_conf(config: Config, path: Union[str, Path] = DEFAULT_SETTINGS_PATH) -> bool:
    """Write the configuration as YAML; log and return False on failure."""
    try:
        text = yaml.safe_dump(config.to_dict(), allow_unicode=True, sort_keys=False)
    except yaml.YAMLError as exc:
        logger.error("yaml marshal err: %s", exc)
        return False
    try:
        Path(path).write_text(text, encoding="utf-8")
    except OSError as exc:
        logger.error("yaml write err: %s", exc)
        return False
    logger.info("%s write successful", path)
    return True