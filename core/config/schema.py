"""Typed config schema blocks shared by loader/validator/CLI."""

from dataclasses import dataclass, field
from typing import Any, Dict, List


class ConfigError(Exception):
    pass


@dataclass
class RuntimeConfig:
    log_level: str = "info"
    max_runtime_s: float = 0.0


@dataclass
class ArtifactsConfigBlock:
    base_dir: str = ""
    resource_dir: str = ""
    encoder: str = "ffmpeg.exe"
    drivers: List[str] = field(
        default_factory=lambda: ["audio_sniffer.dll", "screen_capture_recorder.dll"]
    )


@dataclass
class DriversConfigBlock:
    enabled: bool = True
    register_script: str = "library-register.bat"
    unregister_script: str = "library-unregister.bat"
    template_file: str = ""
    shell: List[str] = field(default_factory=lambda: ["cmd", "/c"])
    timeout_s: float = 30.0


@dataclass
class ProcessConfigBlock:
    working_dir: str = ""
    executable: str = "ffmpeg.exe"
    show_window: bool = False
    line_queue_capacity: int = 1024
    stop_token: str = "q"
    stop_timeout_s: float = 10.0
    kill_timeout_s: float = 5.0
    strict_start: bool = False
    sweep_same_name: bool = False
    sweep_timeout_s: float = 5.0


@dataclass
class MonitorConfigBlock:
    drop_signature: str = "FRAME DROPPED!"
    check_interval_ms: int = 1000


@dataclass
class CaptureParamsBlock:
    video_source: str = "screen-capture-recorder"
    audio_source: str = "virtual-audio-capturer"
    offset_x: int = 0
    offset_y: int = 0
    width: int = 1920
    height: int = 1080
    frame_rate: int = 30
    preset: str = "ultrafast"
    audio_quality: str = "128k"
    output_format: str = "mp4"
    option: str = ""
    destination: str = "capture.mp4"
    output_quality: int = 23


@dataclass
class CommandConfigBlock:
    target: str = "local"
    templates: Dict[str, str] = field(default_factory=dict)
    params: CaptureParamsBlock = field(default_factory=CaptureParamsBlock)


@dataclass
class LoadedConfig:
    runtime: RuntimeConfig
    artifacts: ArtifactsConfigBlock
    drivers: DriversConfigBlock
    process: ProcessConfigBlock
    monitor: MonitorConfigBlock
    command: CommandConfigBlock
    paths: Dict[str, Any] = field(default_factory=dict)


__all__ = [
    "ConfigError",
    "RuntimeConfig",
    "ArtifactsConfigBlock",
    "DriversConfigBlock",
    "ProcessConfigBlock",
    "MonitorConfigBlock",
    "CaptureParamsBlock",
    "CommandConfigBlock",
    "LoadedConfig",
]
