from __future__ import annotations

import json
import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import json5  # type: ignore
import yaml
from pydantic import BaseModel, Field, field_validator

# Variable replacement pattern.
# Supports:
#   - ${NAME}
#   - ${env:NAME}
# Ignores '$${NAME}' so it can be used to escape a literal '${NAME}'.
VAR_PATTERN = re.compile(
    r"(?<!\$)\$\{([A-Za-z_][A-Za-z0-9_]*(?::[A-Za-z_][A-Za-z0-9_]*)?)\}"
)


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


class LoggingSettings(BaseModel):
    # Level for the fuzzpatch logger if not overridden on the command line.
    default_level: LogLevel = LogLevel.warning
    # Mapping of logger name -> level override (e.g., {"py.warnings": "error"})
    enabled_loggers: Dict[str, LogLevel] = Field(default_factory=dict)


class PatchPolicy(BaseModel):
    """
    Which paths a patch may touch, relative to the workspace root.
    - deny_sensitive: refuse paths that look like secrets (.env, keys, tokens)
    - denied_paths: substrings that must not appear in a target path
    - allowed_paths: when non-empty, targets must equal or live under one of these
    """

    deny_sensitive: bool = True
    denied_paths: List[str] = Field(default_factory=list)
    allowed_paths: List[str] = Field(default_factory=list)

    @field_validator("denied_paths", "allowed_paths", mode="before")
    @classmethod
    def _coerce_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class Settings(BaseModel):
    logging: Optional[LoggingSettings] = Field(default=None)
    policy: PatchPolicy = Field(default_factory=PatchPolicy)


def _lookup_var_value(name: str, vars_map: Dict[str, Any]) -> tuple[bool, Any]:
    """
    Resolve a variable or environment-backed placeholder name.

    Supports:
      - NAME      -> from vars_map
      - env:NAME  -> from environment (raw string)

    Returns (found, value); callers should leave the placeholder unchanged when
    found is False.
    """
    if name.startswith("env:"):
        env_name = name[4:]
        if not env_name:
            return False, None
        val = os.getenv(env_name)
        if val is None:
            return False, None
        return True, val

    if name in vars_map:
        return True, vars_map[name]

    return False, None


def _interpolate_string(s: str, vars_map: Dict[str, Any]) -> str:
    def repl(m: re.Match) -> str:
        found, val = _lookup_var_value(m.group(1), vars_map)
        if not found:
            return m.group(0)
        if val is None:
            return ""
        if isinstance(val, (dict, list)):
            return json.dumps(val, ensure_ascii=False)
        return str(val)

    interpolated = VAR_PATTERN.sub(repl, s)
    # Turn escaped '$${' sequences into a literal '${' in the final result.
    return interpolated.replace("$${", "${")


def _apply_variables(obj: Any, vars_map: Dict[str, Any]) -> Any:
    if isinstance(obj, str):
        m = VAR_PATTERN.fullmatch(obj)
        if m:
            found, val = _lookup_var_value(m.group(1), vars_map)
            return val if found else obj
        return _interpolate_string(obj, vars_map)
    if isinstance(obj, dict):
        return {k: _apply_variables(v, vars_map) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_apply_variables(v, vars_map) for v in obj]
    return obj


def _load_raw_file(path: Path) -> Any:
    ext = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    data: Any = None
    if ext in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif ext in {".json5", ".jsonc", ".json"}:
        data = json5.loads(text)
    else:
        raise ValueError(f"Unsupported config file extension: {ext}")
    if data is None:
        return {}
    return data


def load_settings(path: Union[str, Path]) -> Settings:
    data = _load_raw_file(Path(path))
    if not isinstance(data, dict):
        raise ValueError("Root configuration must be a mapping/object")

    data = dict(data)
    vars_spec = data.pop("variables", None) or {}
    if not isinstance(vars_spec, dict):
        raise ValueError("'variables' must be a mapping")

    return Settings.model_validate(_apply_variables(data, vars_spec))
