"""Config value validation."""

from __future__ import annotations

from typing import Any

from .schema import ConfigError, LoadedConfig

_LOG_LEVELS = {"debug", "info", "warning", "warn", "error", "critical"}


def validate_config(cfg: LoadedConfig) -> None:
    # runtime
    _require_float("runtime.max_runtime_s", cfg.runtime.max_runtime_s, min_v=0.0)
    _require_choice("runtime.log_level", cfg.runtime.log_level, _LOG_LEVELS)

    # artifacts
    _require_str("artifacts.encoder", cfg.artifacts.encoder)
    _require_str_list("artifacts.drivers", cfg.artifacts.drivers)
    if len(cfg.artifacts.drivers) != 2:
        raise ConfigError("artifacts.drivers must name exactly 2 libraries")

    # drivers
    _require_str("drivers.register_script", cfg.drivers.register_script)
    _require_str("drivers.unregister_script", cfg.drivers.unregister_script)
    _require_str_list("drivers.shell", cfg.drivers.shell)
    _require_float("drivers.timeout_s", cfg.drivers.timeout_s, min_v=0.1)

    # process
    _require_str("process.executable", cfg.process.executable)
    _require_str("process.stop_token", cfg.process.stop_token)
    _require_int("process.line_queue_capacity", cfg.process.line_queue_capacity, min_v=1)
    _require_float("process.stop_timeout_s", cfg.process.stop_timeout_s, min_v=0.0)
    _require_float("process.kill_timeout_s", cfg.process.kill_timeout_s, min_v=0.0)
    _require_float("process.sweep_timeout_s", cfg.process.sweep_timeout_s, min_v=0.0)

    # monitor
    _require_str("monitor.drop_signature", cfg.monitor.drop_signature)
    _require_int("monitor.check_interval_ms", cfg.monitor.check_interval_ms, min_v=1)

    # command
    _require_str("command.target", cfg.command.target)
    p = cfg.command.params
    _require_int("command.params.offset_x", p.offset_x, min_v=0)
    _require_int("command.params.offset_y", p.offset_y, min_v=0)
    _require_int("command.params.width", p.width, min_v=1)
    _require_int("command.params.height", p.height, min_v=1)
    _require_int("command.params.frame_rate", p.frame_rate, min_v=1)
    _require_str("command.params.destination", p.destination)


def _require_int(
    name: str, value: Any, *, min_v: int | None = None, max_v: int | None = None
) -> int:
    try:
        iv = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer") from e
    if min_v is not None and iv < min_v:
        op = ">=" if min_v != 1 else ">"
        threshold = min_v if min_v != 1 else 0
        raise ConfigError(f"{name} must be {op} {threshold}")
    if max_v is not None and iv > max_v:
        raise ConfigError(f"{name} must be <= {max_v}")
    return iv


def _require_float(
    name: str, value: Any, *, min_v: float | None = None, max_v: float | None = None
) -> float:
    try:
        fv = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number") from e
    if min_v is not None and fv < min_v:
        raise ConfigError(f"{name} must be >= {min_v:g}")
    if max_v is not None and fv > max_v:
        raise ConfigError(f"{name} must be <= {max_v:g}")
    return fv


def _require_str(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{name} must be a non-empty string")
    return value


def _require_choice(name: str, value: Any, choices: set[str]) -> str:
    sv = str(value or "").strip().lower()
    if sv not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(sorted(choices))}")
    return sv


def _require_str_list(name: str, value: Any) -> list[str]:
    if not isinstance(value, list):
        raise ConfigError(f"{name} must be a list of strings")
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise ConfigError(f"{name}[{i}] must be a string")
    return value


__all__ = ["validate_config"]
