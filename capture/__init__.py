from .artifacts import ArtifactLayout, ArtifactStore
from .command import build_command, build_templates_from_config, resolve_target
from .controller import (
    CaptureController,
    ControllerConfig,
    build_controller_config,
    create_controller_from_loaded_config,
)
from .drivers import DriverRegistrar
from .drop_monitor import DropMonitor
from .process import ProcessRunner

__all__ = [
    "ArtifactLayout",
    "ArtifactStore",
    "build_command",
    "build_templates_from_config",
    "resolve_target",
    "CaptureController",
    "ControllerConfig",
    "build_controller_config",
    "create_controller_from_loaded_config",
    "DriverRegistrar",
    "DropMonitor",
    "ProcessRunner",
]
