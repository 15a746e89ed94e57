# -- coding: utf-8 --
"""Register/unregister the capture-driver libraries through a transient script."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Callable, Sequence

from core.errors import DriverRegistrationError

L = logging.getLogger("capture_runtime.drivers")

REGISTER_SCRIPT_NAME = "library-register.bat"
UNREGISTER_SCRIPT_NAME = "library-unregister.bat"
INSTALL_MODE = "/s"
UNINSTALL_MODE = "/u /s"

DEFAULT_SCRIPT_TEMPLATE = (
    "@echo off\r\n"
    'regsvr32 @mode "@audio_sniffer_file"\r\n'
    'regsvr32 @mode "@screen_capture_recorder_file"\r\n'
)

CommandRunner = Callable[[list[str], float], int]


def run_script(argv: list[str], timeout_s: float) -> int:
    completed = subprocess.run(
        argv,
        capture_output=True,
        text=True,
        timeout=timeout_s,
        check=False,
    )
    if completed.stdout:
        L.debug("installer stdout: %s", completed.stdout.strip())
    if completed.stderr:
        L.debug("installer stderr: %s", completed.stderr.strip())
    return completed.returncode


def render_script(
    template: str, mode: str, audio_sniffer_file: str, screen_capture_recorder_file: str
) -> str:
    return (
        template.replace("@mode", mode)
        .replace("@audio_sniffer_file", audio_sniffer_file)
        .replace("@screen_capture_recorder_file", screen_capture_recorder_file)
    )


class DriverRegistrar:
    def __init__(
        self,
        base_dir: str,
        audio_sniffer_file: str,
        screen_capture_recorder_file: str,
        *,
        template: str = DEFAULT_SCRIPT_TEMPLATE,
        shell: Sequence[str] = ("cmd", "/c"),
        register_script: str = REGISTER_SCRIPT_NAME,
        unregister_script: str = UNREGISTER_SCRIPT_NAME,
        timeout_s: float = 30.0,
        runner: CommandRunner | None = None,
    ):
        self.base_dir = base_dir
        self.audio_sniffer_file = audio_sniffer_file
        self.screen_capture_recorder_file = screen_capture_recorder_file
        self.template = template
        self.shell = list(shell)
        self.register_script = register_script
        self.unregister_script = unregister_script
        self.timeout_s = float(timeout_s)
        self._runner = runner or run_script

    def register(self) -> bool:
        """Call after initialization."""
        return self._run(self.register_script, INSTALL_MODE)

    def unregister(self) -> bool:
        """Call before dispose."""
        return self._run(self.unregister_script, UNINSTALL_MODE)

    def _run(self, script_name: str, mode: str) -> bool:
        script_path = os.path.join(self.base_dir, script_name)
        if os.path.exists(script_path):
            L.warning("Installer script already present, skipping: %s", script_path)
            return False
        contents = render_script(
            self.template,
            mode,
            self.audio_sniffer_file,
            self.screen_capture_recorder_file,
        )
        with open(script_path, "w", encoding="utf-8", newline="") as f:
            f.write(contents)
        try:
            try:
                rc = self._runner([*self.shell, script_path], self.timeout_s)
            except (OSError, subprocess.SubprocessError) as e:
                raise DriverRegistrationError(
                    f"Installer script failed to run: {script_path}"
                ) from e
            if rc != 0:
                raise DriverRegistrationError(
                    f"Installer script exited with {rc}: mode={mode!r}"
                )
            action = "unregistered" if mode == UNINSTALL_MODE else "registered"
            L.info("Driver libraries %s (mode=%s)", action, mode)
            return True
        finally:
            try:
                os.remove(script_path)
            except OSError as e:
                L.warning("Failed to delete installer script %s: %s", script_path, e)


def create_registrar_from_loaded_config(cfg, artifacts) -> DriverRegistrar:
    template = DEFAULT_SCRIPT_TEMPLATE
    if cfg.drivers.template_file:
        with open(cfg.drivers.template_file, "r", encoding="utf-8") as f:
            template = f.read()
    audio_sniffer, screen_capture_recorder = artifacts.driver_paths
    return DriverRegistrar(
        artifacts.base_dir,
        audio_sniffer,
        screen_capture_recorder,
        template=template,
        shell=cfg.drivers.shell,
        register_script=cfg.drivers.register_script,
        unregister_script=cfg.drivers.unregister_script,
        timeout_s=cfg.drivers.timeout_s,
    )


__all__ = [
    "DEFAULT_SCRIPT_TEMPLATE",
    "create_registrar_from_loaded_config",
    "DriverRegistrar",
    "INSTALL_MODE",
    "UNINSTALL_MODE",
    "render_script",
    "run_script",
]
