"""YAML loader and section builders for capture configuration."""

from __future__ import annotations

import glob
import os
from typing import Any

import yaml

from .schema import (
    ArtifactsConfigBlock,
    CaptureParamsBlock,
    CommandConfigBlock,
    ConfigError,
    DriversConfigBlock,
    LoadedConfig,
    MonitorConfigBlock,
    ProcessConfigBlock,
    RuntimeConfig,
)

_TOP_LEVEL_KEYS = {"runtime", "artifacts", "drivers", "process", "monitor", "command"}


def load_config(config_dir: str = "config") -> LoadedConfig:
    main_path = _find_main_config(config_dir)
    main_data = _read_yaml(main_path)
    _validate_allowed_keys(main_data, _TOP_LEVEL_KEYS, "<root>", main_path)

    runtime = _build_dataclass(
        RuntimeConfig, main_data.get("runtime"), main_path, section="runtime"
    )
    artifacts = _build_dataclass(
        ArtifactsConfigBlock, main_data.get("artifacts"), main_path, section="artifacts"
    )
    drivers = _build_dataclass(
        DriversConfigBlock, main_data.get("drivers"), main_path, section="drivers"
    )
    process = _build_dataclass(
        ProcessConfigBlock, main_data.get("process"), main_path, section="process"
    )
    monitor = _build_dataclass(
        MonitorConfigBlock, main_data.get("monitor"), main_path, section="monitor"
    )
    command = _build_command_config(main_data.get("command"), main_path)

    config_root = os.path.dirname(os.path.abspath(main_path))
    for block, key in (
        (artifacts, "base_dir"),
        (artifacts, "resource_dir"),
        (process, "working_dir"),
    ):
        setattr(block, key, _resolve_dir(getattr(block, key), config_root))

    template_path = ""
    if drivers.template_file:
        template_path = drivers.template_file
        if not os.path.isabs(template_path):
            template_path = os.path.join(config_root, template_path)
        if not os.path.isfile(template_path):
            raise ConfigError(f"drivers.template_file not found: {template_path}")
        drivers.template_file = template_path

    return LoadedConfig(
        runtime=runtime,
        artifacts=artifacts,
        drivers=drivers,
        process=process,
        monitor=monitor,
        command=command,
        paths={
            "main": main_path,
            "driver_template": template_path,
        },
    )


def _find_main_config(config_dir: str) -> str:
    patterns = [
        os.path.join(config_dir, "main_*.yaml"),
        os.path.join(config_dir, "main_*.yml"),
    ]
    candidates: list[str] = []
    for pattern in patterns:
        candidates.extend(glob.glob(pattern))
    if len(candidates) == 0:
        raise ConfigError(f"No main_*.yaml found under {config_dir}")
    if len(candidates) > 1:
        raise ConfigError(
            f"Expected exactly one main_*.yaml, found: {', '.join(sorted(candidates))}"
        )
    return candidates[0]


def _read_yaml(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"YAML root must be a mapping: {path}")
    return data


def _build_dataclass(cls, data: Any, main_path: str, section: str):
    obj = cls()
    if data is None:
        return obj
    if not isinstance(data, dict):
        raise ConfigError(f"'{section}' must be a mapping in {main_path}")
    fields = cls.__dataclass_fields__
    for k, v in data.items():
        if k in fields:
            setattr(obj, k, v)
        else:
            raise ConfigError(f"Unknown field {section}.{k} in {main_path}")
    return obj


def _validate_allowed_keys(
    data: dict[str, Any], allowed_keys: set[str], section: str, main_path: str
) -> None:
    for key in data.keys():
        if key not in allowed_keys:
            raise ConfigError(f"Unknown field {section}.{key} in {main_path}")


def _build_command_config(data: Any, main_path: str) -> CommandConfigBlock:
    if data is None:
        return CommandConfigBlock()
    if not isinstance(data, dict):
        raise ConfigError(f"'command' must be a mapping in {main_path}")
    _validate_allowed_keys(data, {"target", "templates", "params"}, "command", main_path)
    cfg = CommandConfigBlock()
    if "target" in data:
        cfg.target = str(data.get("target") or cfg.target)
    templates = data.get("templates")
    if templates is not None:
        if not isinstance(templates, dict):
            raise ConfigError(f"'command.templates' must be a mapping in {main_path}")
        cfg.templates = {str(k): str(v) for k, v in templates.items()}
    cfg.params = _build_dataclass(
        CaptureParamsBlock, data.get("params"), main_path, section="command.params"
    )
    return cfg


def _resolve_dir(path: str, config_root: str) -> str:
    raw = str(path or "").strip()
    if not raw:
        return ""
    if os.path.isabs(raw):
        return raw
    return os.path.abspath(os.path.join(config_root, raw))


__all__ = ["load_config"]
