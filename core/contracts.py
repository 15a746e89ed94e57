"""Data contracts for capture parameters, session state, and emitted events."""

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum

from core.errors import MissingParameterError


class RecordingTarget(Enum):
    LOCAL = "local"
    TWITCH = "twitch"
    YOUTUBE = "youtube"


class SessionState(Enum):
    UNREADY = "unready"
    READY = "ready"
    RECORDING = "recording"
    STOPPED = "stopped"
    DISPOSED = "disposed"


# Fields allowed to be empty strings (still must not be None).
_OPTIONAL_TEXT_FIELDS = frozenset({"option"})


@dataclass(frozen=True, slots=True)
class CaptureParameters:
    video_source: str
    audio_source: str
    offset_x: int | str
    offset_y: int | str
    width: int | str
    height: int | str
    frame_rate: int | str
    preset: str
    audio_quality: str
    output_format: str
    destination: str
    output_quality: int | str
    option: str = ""

    def validate(self) -> None:
        missing = []
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                missing.append(f.name)
            elif (
                f.name not in _OPTIONAL_TEXT_FIELDS
                and isinstance(value, str)
                and not value.strip()
            ):
                missing.append(f.name)
        if missing:
            raise MissingParameterError(
                f"Capture parameters missing: {', '.join(missing)}"
            )

    def placeholders(self) -> dict[str, str]:
        """Map template placeholder names to their string values."""
        self.validate()
        return {
            "videoSource": str(self.video_source),
            "audioSource": str(self.audio_source),
            "x": str(self.offset_x),
            "y": str(self.offset_y),
            "width": str(self.width),
            "height": str(self.height),
            "framerate": str(self.frame_rate),
            "preset": str(self.preset),
            "audioRate": str(self.audio_quality),
            "format": str(self.output_format),
            "option1": str(self.option),
            "filename": str(self.destination),
            "liveUrl": str(self.destination),
            "outputquality": str(self.output_quality),
        }


@dataclass(slots=True)
class LineReceived:
    text: str


@dataclass(slots=True)
class FrameDropped:
    total: int = 0
    new_drops: int = 0
    detected_at: datetime | None = None


@dataclass(slots=True)
class ProcessExited:
    returncode: int | None = None
    pid: int | None = None


__all__ = [
    "RecordingTarget",
    "SessionState",
    "CaptureParameters",
    "LineReceived",
    "FrameDropped",
    "ProcessExited",
]
