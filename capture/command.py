# -- coding: utf-8 --
"""Build encoder command lines from a recording target and capture parameters."""

import re
from collections.abc import Mapping

from core.contracts import CaptureParameters, RecordingTarget
from core.errors import (
    CommandTemplateError,
    UnknownTargetError,
    UnsupportedTargetError,
)

# Desktop capture through the screen-capture-recorder / virtual audio drivers.
LOCAL_RECORDING_TEMPLATE = (
    '-f dshow -rtbufsize 100M -framerate @framerate '
    '-i video="@videoSource":audio="@audioSource" '
    '-vf "crop=@width:@height:@x:@y" '
    "-c:v libx264 -preset @preset -crf @outputquality -pix_fmt yuv420p "
    "-c:a aac -b:a @audioRate @option1 "
    '-f @format -y "@filename"'
)

TWITCH_LIVE_TEMPLATE = (
    '-f dshow -rtbufsize 100M -framerate @framerate '
    '-i video="@videoSource":audio="@audioSource" '
    '-vf "crop=@width:@height:@x:@y" '
    "-c:v libx264 -preset @preset -crf @outputquality -pix_fmt yuv420p "
    "-g 60 -c:a aac -b:a @audioRate -ar 44100 @option1 "
    '-f @format "@liveUrl"'
)

DEFAULT_TEMPLATES: dict[RecordingTarget, str] = {
    RecordingTarget.LOCAL: LOCAL_RECORDING_TEMPLATE,
    RecordingTarget.TWITCH: TWITCH_LIVE_TEMPLATE,
}

# Only these names are substituted; any other `@word` (e.g. `user@host`) is literal.
PLACEHOLDER_NAMES = (
    "videoSource",
    "audioSource",
    "x",
    "y",
    "width",
    "height",
    "framerate",
    "preset",
    "audioRate",
    "format",
    "option1",
    "filename",
    "liveUrl",
    "outputquality",
)

_PLACEHOLDER_RE = re.compile(
    r"@(" + "|".join(sorted(PLACEHOLDER_NAMES, key=len, reverse=True)) + r")(?![A-Za-z0-9_])"
)


def resolve_target(target) -> RecordingTarget:
    """Coerce a target value or name (case-insensitive) into the enum."""
    if isinstance(target, RecordingTarget):
        return target
    if isinstance(target, str):
        key = target.strip().lower()
        for member in RecordingTarget:
            if key in (member.value, member.name.lower()):
                return member
    raise UnknownTargetError(f"Unknown recording target: {target!r}")


def placeholders_in(template: str) -> list[str]:
    return _PLACEHOLDER_RE.findall(template)


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute every `@name` once; substituted text is never rescanned."""
    unresolved = sorted({n for n in placeholders_in(template) if n not in values})
    if unresolved:
        raise CommandTemplateError(
            f"Template placeholders have no value: {', '.join(unresolved)}"
        )
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)


def build_command(
    target,
    params: CaptureParameters,
    *,
    templates: Mapping[RecordingTarget, str] | None = None,
) -> str:
    rtype = resolve_target(target)
    table = dict(DEFAULT_TEMPLATES)
    if templates:
        table.update(templates)
    template = table.get(rtype)
    if template is None:
        raise UnsupportedTargetError(
            f"Recording target '{rtype.value}' is not implemented"
        )
    return render_template(template, params.placeholders())


def build_capture_parameters(params_block) -> CaptureParameters:
    """Build from a `command.params` config block."""
    return CaptureParameters(
        video_source=params_block.video_source,
        audio_source=params_block.audio_source,
        offset_x=params_block.offset_x,
        offset_y=params_block.offset_y,
        width=params_block.width,
        height=params_block.height,
        frame_rate=params_block.frame_rate,
        preset=params_block.preset,
        audio_quality=params_block.audio_quality,
        output_format=params_block.output_format,
        destination=params_block.destination,
        output_quality=params_block.output_quality,
        option=params_block.option if params_block.option is not None else "",
    )


def build_templates_from_config(raw: Mapping[str, str] | None) -> dict[RecordingTarget, str]:
    """Turn `command.templates` (target name -> template) into a lookup table."""
    out: dict[RecordingTarget, str] = {}
    for name, template in (raw or {}).items():
        out[resolve_target(name)] = str(template)
    return out


__all__ = [
    "DEFAULT_TEMPLATES",
    "LOCAL_RECORDING_TEMPLATE",
    "PLACEHOLDER_NAMES",
    "TWITCH_LIVE_TEMPLATE",
    "build_capture_parameters",
    "build_command",
    "build_templates_from_config",
    "placeholders_in",
    "render_template",
    "resolve_target",
]
