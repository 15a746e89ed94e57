# -- coding: utf-8 --

import argparse
import logging
import sys
import threading
import time

from capture import (
    build_command,
    build_templates_from_config,
    create_controller_from_loaded_config,
)
from capture.command import build_capture_parameters
from core.config import ConfigError, load_config, validate_config
from core.errors import CaptureError


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="CaptureRuntime screen recorder supervisor (config-driven)",
    )
    p.add_argument(
        "--config-dir", default="config", help="Directory containing main_*.yaml"
    )
    p.add_argument("--verbose", action="store_true", help="Debug log")
    p.add_argument(
        "--log-level", default="", help="Override log level (debug/info/warning/error)"
    )
    p.add_argument(
        "--print-command",
        action="store_true",
        help="Print the encoder command line and exit",
    )
    return p.parse_args(argv)


def setup_logging(verbose: bool, log_level: str = ""):
    if verbose:
        level = logging.DEBUG
    else:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "warn": logging.WARNING,
            "error": logging.ERROR,
            "critical": logging.CRITICAL,
        }
        level = level_map.get(str(log_level or "").strip().lower(), logging.INFO)
    # Use UTC for all %(asctime)s timestamps in logs.
    logging.Formatter.converter = time.gmtime
    logging.basicConfig(
        level=level,
        format="%(asctime)sZ [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_level)
    try:
        cfg = load_config(args.config_dir)
        validate_config(cfg)
    except ConfigError as e:
        logging.error("Config invalid: %s", e)
        return 1
    # Config-driven log level (unless overridden by CLI).
    if not args.verbose and not args.log_level:
        setup_logging(False, cfg.runtime.log_level)

    try:
        arguments = build_command(
            cfg.command.target,
            build_capture_parameters(cfg.command.params),
            templates=build_templates_from_config(cfg.command.templates),
        )
    except CaptureError as e:
        logging.error("Cannot build encoder command: %s", e)
        return 1
    if args.print_command:
        print(arguments)
        return 0

    logging.info(
        "Starting: target=%s exe=%s destination=%s runtime=%s",
        cfg.command.target,
        cfg.process.executable,
        cfg.command.params.destination,
        f"{cfg.runtime.max_runtime_s}s" if cfg.runtime.max_runtime_s else "unlimited",
    )
    logging.info("Config file: main=%s", cfg.paths.get("main"))

    with create_controller_from_loaded_config(cfg) as controller:
        if not controller.initialize():
            logging.error(
                "Required artifacts missing under %s", controller.artifacts.base_dir
            )
            return 1
        registered = False
        exited = threading.Event()
        controller.runner.exited.subscribe(lambda _evt: exited.set())
        try:
            if cfg.drivers.enabled:
                registered = controller.register()
            working_dir = cfg.process.working_dir or controller.artifacts.base_dir
            if not controller.start(
                working_dir,
                cfg.process.executable,
                arguments,
                cfg.process.show_window,
            ):
                return 1
            limit = cfg.runtime.max_runtime_s if cfg.runtime.max_runtime_s > 0 else None
            deadline = time.monotonic() + limit if limit else None
            while not exited.wait(0.5):
                if deadline is not None and time.monotonic() >= deadline:
                    logging.info("Runtime limit reached (%.1fs)", limit)
                    break
        except KeyboardInterrupt:
            logging.info("Capture STOPPED by user (Ctrl+C)")
        except CaptureError:
            logging.exception("Capture failed")
            return 1
        finally:
            controller.stop()
            if registered:
                try:
                    controller.unregister()
                except CaptureError as e:
                    logging.warning("Driver unregister failed: %s", e)
        logging.info(
            "Done: drops=%d returncode=%s",
            controller.drop_count,
            controller.runner.returncode,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
