from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

import yaml


DEFAULT_TILE_PATH = "/{z}/{x}/{y}.{format}"


class ConfigurationError(ValueError):
    """Deployment-time misconfiguration; the server must not start."""


def _load_yaml(path: str) -> Dict:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(path: Optional[str]) -> Dict[str, Any]:
    """
    Read a YAML config file. Settings may live under a `tileserver:` key or at
    the top level. A missing file yields an empty mapping.
    """
    if not path or not Path(path).exists():
        return {}
    doc = _load_yaml(path)
    if not isinstance(doc, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level")
    section = doc.get("tileserver", doc)
    if not isinstance(section, dict):
        raise ConfigurationError(f"{path}: 'tileserver' must be a mapping")
    return dict(section)


@dataclass(frozen=True)
class ServerConfig:
    """
    Immutable server options, built once at startup.

    Attributes:
        source: tile source URI (e.g. mbtiles:///data/world.mbtiles).
        tile_path: URL template with {z}, {x}, {y} and {format}.
        headers: header name -> Jinja2 template string.
        source_timeout: optional deadline (seconds) for each source call.
        cors: add a permissive CORS middleware.
    """
    source: str
    tile_path: str = DEFAULT_TILE_PATH
    headers: Mapping[str, str] = field(default_factory=dict)
    source_timeout: Optional[float] = None
    cors: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.source or not isinstance(self.source, str):
            raise ConfigurationError("a tile source URI is required")
        if not isinstance(self.headers, Mapping):
            raise ConfigurationError("headers must be a mapping of name -> template")
        object.__setattr__(
            self, "headers", MappingProxyType({str(k): str(v) for k, v in self.headers.items()})
        )
        if self.source_timeout is not None:
            timeout = float(self.source_timeout)
            if timeout <= 0:
                raise ConfigurationError("source_timeout must be > 0")
            object.__setattr__(self, "source_timeout", timeout)
        object.__setattr__(self, "port", int(self.port))

    @classmethod
    def from_options(cls, options: Union[str, Mapping[str, Any], "ServerConfig"]) -> "ServerConfig":
        """
        Accept a bare source URI, a mapping (camelCase `tilePath` or snake_case
        keys), or an existing ServerConfig.
        """
        if isinstance(options, ServerConfig):
            return options
        if isinstance(options, str):
            return cls(source=options)
        if not isinstance(options, Mapping):
            raise ConfigurationError(f"unsupported options type: {type(options).__name__}")

        timeout = options.get("source_timeout", options.get("sourceTimeout"))
        return cls(
            source=options.get("source"),
            tile_path=options.get("tile_path") or options.get("tilePath") or DEFAULT_TILE_PATH,
            headers=options.get("headers") or {},
            source_timeout=timeout,
            cors=bool(options.get("cors", True)),
            host=str(options.get("host", "0.0.0.0")),
            port=options.get("port", 8000),
            log_level=options.get("log_level"),
        )
