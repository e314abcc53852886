# etch/config/settings.py
from dataclasses import dataclass, fields as dataclass_fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
import structlog

from etch.exceptions import ConfigError
from etch.util import xml_escape

log = structlog.get_logger(__name__)

class TrimMode(Enum):
    # whitespace removed from the literal text next to a tag.
    NONE = "none"
    NEWLINE = "nl"
    SLURP = "slurp"

    @classmethod
    def from_value(cls, value: Any) -> "TrimMode":
        if isinstance(value, cls):
            return value
        if value is None or value is False:
            return cls.NONE
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigError(f"Invalid trim mode: {value!r} (expected one of none, nl, slurp)") from None

DEFAULT_TAGS: Tuple[str, str] = ("<%", "%>")
DEFAULT_VAR_NAME = "it"
DEFAULT_EXTENSION = ".etch"
DEFAULT_AUTO_TRIM: Tuple[TrimMode, TrimMode] = (TrimMode.NONE, TrimMode.NEWLINE)

# accepted spellings in option mappings and config files -> RenderOptions attribute
OPTION_KEY_TO_ATTR_MAP: Dict[str, str] = {
    "async": "is_async",
    "is_async": "is_async",
    "globalAwait": "global_await",
    "global_await": "global_await",
    "autoEscape": "auto_escape",
    "auto_escape": "auto_escape",
    "escapeFunction": "escape_function",
    "escape_function": "escape_function",
    "filterFunction": "filter_function",
    "filter_function": "filter_function",
    "tags": "tags",
    "interpolate_prefix": "interpolate_prefix",
    "raw_prefix": "raw_prefix",
    "autoTrim": "auto_trim",
    "auto_trim": "auto_trim",
    "varName": "var_name",
    "var_name": "var_name",
    "cache": "cache",
    "name": "name",
    "views": "views",
    "defaultExtension": "default_extension",
    "default_extension": "default_extension",
}

@dataclass
class RenderOptions:
    # holds every setting that affects compiling or rendering one template.
    is_async: bool = False
    global_await: bool = False
    auto_escape: bool = True
    escape_function: Callable[[Any], str] = xml_escape
    filter_function: Optional[Callable[[Any], Any]] = None
    tags: Tuple[str, str] = DEFAULT_TAGS
    interpolate_prefix: str = "="
    raw_prefix: str = "~"
    auto_trim: Tuple[TrimMode, TrimMode] = DEFAULT_AUTO_TRIM
    var_name: str = DEFAULT_VAR_NAME
    cache: bool = False
    name: Optional[str] = None
    views: Optional[Path] = None
    default_extension: str = DEFAULT_EXTENSION

    def __post_init__(self):
        if isinstance(self.tags, str):
            raise ConfigError(f"tags must be an (open, close) pair, got {self.tags!r}")
        self.tags = tuple(self.tags)
        if len(self.tags) != 2 or not all(isinstance(t, str) and t for t in self.tags):
            raise ConfigError(f"tags must be a pair of non-empty strings, got {self.tags!r}")
        if isinstance(self.auto_trim, (str, TrimMode)) or self.auto_trim is None or self.auto_trim is False:
            self.auto_trim = (self.auto_trim, self.auto_trim)
        self.auto_trim = tuple(TrimMode.from_value(mode) for mode in self.auto_trim)
        if len(self.auto_trim) != 2:
            raise ConfigError(f"auto_trim must hold a left and a right mode, got {self.auto_trim!r}")
        if not self.var_name.isidentifier():
            raise ConfigError(f"var_name must be a valid Python identifier, got {self.var_name!r}")
        if self.views is not None and not isinstance(self.views, Path):
            self.views = Path(self.views)
        if self.global_await and not self.is_async:
            log.debug("global_await_ignored_without_async")

    @property
    def uses_global_await(self) -> bool:
        return self.is_async and self.global_await

    def compile_key(self) -> Tuple[Any, ...]:
        """Settings baked into generated code; two options with equal keys compile identically."""
        return (
            self.is_async, self.uses_global_await, self.auto_escape,
            self.filter_function is not None, self.tags, self.interpolate_prefix,
            self.raw_prefix, self.auto_trim, self.var_name,
        )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any], base: Optional["RenderOptions"] = None) -> "RenderOptions":
        """Builds options from a mapping of snake_case or camelCase keys, layered over `base`."""
        attr_values: Dict[str, Any] = {}
        for key, value in values.items():
            attr = OPTION_KEY_TO_ATTR_MAP.get(key)
            if attr is None:
                raise ConfigError(f"Unknown render option: {key!r}")
            attr_values[attr] = value
        if base is None:
            return cls(**attr_values)
        return replace(base, **attr_values)

    def merged(self, overrides: Any = None) -> "RenderOptions":
        # accepts None, another RenderOptions (only its non-default fields apply) or a mapping.
        if overrides is None:
            return self
        if isinstance(overrides, RenderOptions):
            defaults = RenderOptions()
            changed = {
                f.name: getattr(overrides, f.name)
                for f in dataclass_fields(RenderOptions)
                if getattr(overrides, f.name) != getattr(defaults, f.name)
            }
            return replace(self, **changed)
        if isinstance(overrides, Mapping):
            return RenderOptions.from_mapping(overrides, base=self)
        raise ConfigError(f"Render options must be a RenderOptions or a mapping, got {type(overrides).__name__}")
