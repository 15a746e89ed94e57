# -- coding: utf-8 --

import logging
import os
import shutil
import sys
from dataclasses import dataclass, field

L = logging.getLogger("capture_runtime.artifacts")

ENCODER_FILE_NAME = "ffmpeg.exe"
AUDIO_SNIFFER_FILE_NAME = "audio_sniffer.dll"
SCREEN_CAPTURE_RECORDER_FILE_NAME = "screen_capture_recorder.dll"


def program_dir() -> str:
    """Directory of the running program, falling back to the cwd."""
    main = sys.argv[0] if sys.argv and sys.argv[0] else ""
    if main and os.path.exists(main):
        return os.path.dirname(os.path.abspath(main))
    return os.getcwd()


@dataclass
class ArtifactLayout:
    base_dir: str = ""
    encoder: str = ENCODER_FILE_NAME
    drivers: list[str] = field(
        default_factory=lambda: [
            AUDIO_SNIFFER_FILE_NAME,
            SCREEN_CAPTURE_RECORDER_FILE_NAME,
        ]
    )
    resource_dir: str = ""

    def __post_init__(self):
        self.base_dir = self.base_dir or program_dir()


class ArtifactStore:
    """Check for, and provision, the encoder and capture-driver files."""

    def __init__(self, layout: ArtifactLayout | None = None):
        self.layout = layout or ArtifactLayout()

    @property
    def base_dir(self) -> str:
        return self.layout.base_dir

    @property
    def encoder_path(self) -> str:
        return os.path.join(self.base_dir, self.layout.encoder)

    @property
    def driver_paths(self) -> list[str]:
        return [os.path.join(self.base_dir, name) for name in self.layout.drivers]

    @property
    def required_paths(self) -> list[str]:
        return [self.encoder_path, *self.driver_paths]

    def missing(self) -> list[str]:
        return [p for p in self.required_paths if not os.path.isfile(p)]

    def is_present(self) -> bool:
        return not self.missing()

    def provision(self) -> list[str]:
        """Copy missing files from the resource dir; returns the paths written."""
        resource_dir = self.layout.resource_dir
        written: list[str] = []
        missing = self.missing()
        if not missing:
            return written
        if not resource_dir:
            L.debug("No resource_dir configured; cannot provision %d file(s)", len(missing))
            return written
        os.makedirs(self.base_dir, exist_ok=True)
        for dest in missing:
            src = os.path.join(resource_dir, os.path.basename(dest))
            if not os.path.isfile(src):
                L.warning("Bundled artifact not found: %s", src)
                continue
            try:
                shutil.copyfile(src, dest)
            except OSError as e:
                L.error("Failed to provision %s: %s", dest, e)
                continue
            L.info("Provisioned %s", dest)
            written.append(dest)
        return written


def build_artifact_layout(cfg) -> ArtifactLayout:
    """Build from a LoadedConfig `artifacts` section."""
    return ArtifactLayout(
        base_dir=str(cfg.artifacts.base_dir or ""),
        encoder=str(cfg.artifacts.encoder),
        drivers=list(cfg.artifacts.drivers),
        resource_dir=str(cfg.artifacts.resource_dir or ""),
    )


__all__ = [
    "ArtifactLayout",
    "build_artifact_layout",
    "ArtifactStore",
    "AUDIO_SNIFFER_FILE_NAME",
    "ENCODER_FILE_NAME",
    "SCREEN_CAPTURE_RECORDER_FILE_NAME",
    "program_dir",
]
