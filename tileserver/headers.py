"""
Response header templates.

Operators configure headers as Jinja2 templates, e.g.

    headers:
      Cache-Control: "{% if flags['404'] %}no-cache{% else %}public, max-age=3600{% endif %}"
      X-Tile: "{{ tile.zoom }}/{{ tile.x }}/{{ tile.y }}{% if tile.retina %}@2x{% endif %}"
      Surrogate-Key: "{% if tileJSON %}tilejson{% endif %}"

Every render flag is a top-level name and also an entry of `flags`, where the
response status appears under its own key (`flags["404"]`, `flags["200"]`).
Booleans print as `true` / `false`.

Templates are compiled once at startup and smoke-rendered without arguments;
a broken template is a deployment error, not a per-request one.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import jinja2

from tileserver.config import ConfigurationError


log = logging.getLogger(__name__)


class HeaderTemplateError(ConfigurationError):
    def __init__(self, name: str, reason: str):
        super().__init__(f"'{name}' header is invalid: {reason}")
        self.name = name
        self.reason = reason


def _finalize(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def normalize_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {str(k).lower(): v for k, v in (headers or {}).items()}


def status_flags(flags: Mapping[str, Any]) -> Dict[str, Any]:
    """Render flags keyed by name, plus the numeric status as a key of its own."""
    out = dict(flags)
    status = flags.get("status")
    if status is not None:
        out[str(status)] = True
    return out


class HeaderTemplater:
    """Immutable set of compiled header templates."""

    def __init__(self, templates: Mapping[str, jinja2.Template]):
        self._templates = MappingProxyType(dict(templates))

    @classmethod
    def compile(cls, sources: Optional[Mapping[str, str]] = None) -> "HeaderTemplater":
        env = jinja2.Environment(
            undefined=jinja2.ChainableUndefined,
            autoescape=False,
            keep_trailing_newline=False,
            finalize=_finalize,
        )
        compiled: Dict[str, jinja2.Template] = {}
        for name, text in (sources or {}).items():
            try:
                template = env.from_string(str(text))
                # fail fast on templates that only break at render time
                template.render()
            except jinja2.TemplateError as e:
                log.error("'%s' header is invalid: %s", name, e)
                raise HeaderTemplateError(name, str(e)) from e
            except Exception as e:
                log.error("'%s' header is invalid: %s", name, e)
                raise HeaderTemplateError(name, f"{type(e).__name__}: {e}") from e
            compiled[name] = template
        return cls(compiled)

    @property
    def names(self):
        return tuple(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    def render(
        self,
        headers: Optional[Mapping[str, Any]],
        params: Mapping[str, Any],
        **flags: Any,
    ) -> Dict[str, Any]:
        """
        Return a new header mapping: incoming names lower-cased, then every
        template rendered against `params` + `flags`; non-empty results
        overwrite the header of the same (lower-cased) name.
        """
        out = normalize_headers(headers)
        context = dict(params)
        context.update(flags)
        context["flags"] = status_flags(flags)
        for name, template in self._templates.items():
            value = template.render(context)
            if value:
                out[name.lower()] = value
        return out
