"""
Container configuration.

Values merge with precedence (later overrides earlier):
defaults < .env file < environment variables < explicit overrides.
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional
import os

from dotenv import dotenv_values

from .lifecycle import DisposalStrategy
from .scopes import ServiceScope
from .errors import InvalidBinding

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass(frozen=True)
class ContainerConfig:
    """
    Container options.

    Attributes:
        default_scope: Scope for bindings declared without one
        auto_bind: Self-bind unregistered classes the metadata provider declares
        allow_lazy_cycles: Close singleton cycles with lazy handles on lazy edges
        trace: Attach a logging diagnostics listener
        disposal_strategy: Order of deactivation handlers at container teardown
    """

    default_scope: ServiceScope = ServiceScope.TRANSIENT
    auto_bind: bool = False
    allow_lazy_cycles: bool = True
    trace: bool = False
    disposal_strategy: DisposalStrategy = DisposalStrategy.LIFO

    def __post_init__(self):
        try:
            object.__setattr__(self, "default_scope", ServiceScope.parse(self.default_scope))
        except InvalidBinding as e:
            raise ConfigError(str(e)) from None
        try:
            object.__setattr__(self, "disposal_strategy", DisposalStrategy.parse(self.disposal_strategy))
        except ValueError:
            raise ConfigError(
                f"Unknown disposal strategy {self.disposal_strategy!r}; expected one of "
                f"{', '.join(s.value for s in DisposalStrategy)}"
            ) from None

    @classmethod
    def from_env(
        cls,
        prefix: str = "PINION_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ContainerConfig":
        """
        Build config from a .env file and the process environment.

        Args:
            prefix: Environment variable prefix (PINION_DEFAULT_SCOPE, ...)
            env_file: Optional path to a .env file
            overrides: Explicit values (highest precedence)
        """
        raw: Dict[str, Any] = {}

        if env_file:
            env_path = Path(env_file)
            if not env_path.exists():
                raise ConfigError(f"Env file not found: {env_file}")
            raw.update(cls._extract(dotenv_values(env_path), prefix))

        raw.update(cls._extract(os.environ, prefix))

        if overrides:
            raw.update(overrides)

        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContainerConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown container option(s): {', '.join(sorted(unknown))}")

        values = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name in ("default_scope", "disposal_strategy"):
                values[f.name] = value
            else:
                values[f.name] = cls._to_bool(f.name, value)

        return cls(**values)

    def with_options(self, **options: Any) -> "ContainerConfig":
        return replace(self, **options)

    @classmethod
    def _extract(cls, source, prefix: str) -> Dict[str, Any]:
        known = {f.name for f in fields(cls)}
        result = {}
        for key, value in source.items():
            if not key.startswith(prefix) or value is None:
                continue
            name = key[len(prefix):].lower()
            if name in known:
                result[name] = value
        return result

    @staticmethod
    def _to_bool(name: str, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"Option '{name}' expects a boolean, got {value!r}")
