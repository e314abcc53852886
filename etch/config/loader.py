# etch/config/loader.py
"""
Loads default render options from a project TOML file.
"""
import toml
from pathlib import Path
from typing import Any, Dict, Optional
import structlog

from etch.exceptions import ConfigError

from .settings import RenderOptions, OPTION_KEY_TO_ATTR_MAP

log = structlog.get_logger(__name__)

PROJECT_CONFIG_FILENAMES = [".etch.toml", "etch.toml", "pyproject.toml"]

# options that hold callables cannot come from a file
CODE_ONLY_ATTRS = {"escape_function", "filter_function"}

def _load_toml_file_data(file_path: Path) -> Dict[str, Any]:
    if not file_path.is_file(): return {}
    log.debug("loading_toml_config_file", path=str(file_path))
    try:
        data = toml.load(file_path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigError(f"Could not read config file {file_path}: {e}") from e
    return data.get("tool", {}).get("etch", {}) if file_path.name == "pyproject.toml" else data

def load_options_file(file_path: Path, profile: Optional[str] = None) -> Dict[str, Any]:
    """Returns the option table of one config file, with the named profile layered on top."""
    file_path = Path(file_path)
    settings = dict(_load_toml_file_data(file_path))
    profiles = settings.pop("profiles", {})
    if profile:
        if not isinstance(profiles, dict) or profile not in profiles:
            raise ConfigError(f"Profile '{profile}' not found in {file_path}")
        settings.update(profiles[profile])

    for key in settings:
        attr = OPTION_KEY_TO_ATTR_MAP.get(key)
        if attr is None:
            raise ConfigError(f"Unknown option '{key}' in {file_path}")
        if attr in CODE_ONLY_ATTRS:
            raise ConfigError(f"Option '{key}' can only be set from Python code, not in {file_path}")

    # views are relative to the file that names them
    for key in ("views",):
        if key in settings:
            views_path = Path(settings[key])
            settings[key] = views_path if views_path.is_absolute() else (file_path.parent / views_path).resolve()
    return settings

def load_project_options(base_dir: Optional[Path] = None, profile: Optional[str] = None) -> RenderOptions:
    """Builds RenderOptions from the first project config file found in `base_dir`."""
    base_dir = Path(base_dir) if base_dir else Path.cwd()
    for filename in PROJECT_CONFIG_FILENAMES:
        candidate = base_dir / filename
        if not candidate.is_file():
            continue
        settings = load_options_file(candidate, profile=profile)
        if not settings and filename == "pyproject.toml":
            continue
        log.info("project_config_loaded", path=str(candidate), options=sorted(settings))
        return RenderOptions.from_mapping(settings)
    if profile:
        raise ConfigError(f"Profile '{profile}' requested but no config file found in {base_dir}")
    log.debug("no_configuration_files_loaded", base_dir=str(base_dir))
    return RenderOptions()
