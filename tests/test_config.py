import os
import tempfile
import unittest
from dataclasses import replace

from capture import build_command, build_templates_from_config
from capture.command import build_capture_parameters
from core.config import ConfigError, load_config, validate_config

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SHIPPED_CONFIG_DIR = os.path.join(REPO_ROOT, "config")


class _TempConfigDir(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.config_dir = self._tmp.name

    def _write(self, name: str, text: str) -> str:
        path = os.path.join(self.config_dir, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path


class TestLoadConfig(_TempConfigDir):
    def test_shipped_config_is_valid(self):
        cfg = load_config(SHIPPED_CONFIG_DIR)
        validate_config(cfg)
        self.assertEqual(cfg.command.target, "local")
        self.assertEqual(cfg.process.stop_token, "q")
        cmd = build_command(
            cfg.command.target,
            build_capture_parameters(cfg.command.params),
            templates=build_templates_from_config(cfg.command.templates),
        )
        self.assertIn('"capture.mp4"', cmd)

    def test_empty_file_uses_defaults(self):
        main_path = self._write("main_empty.yaml", "")
        cfg = load_config(self.config_dir)
        validate_config(cfg)
        self.assertEqual(cfg.paths["main"], main_path)
        self.assertEqual(cfg.monitor.drop_signature, "FRAME DROPPED!")
        self.assertEqual(cfg.monitor.check_interval_ms, 1000)
        self.assertEqual(cfg.artifacts.base_dir, "")
        self.assertFalse(cfg.process.sweep_same_name)

    def test_relative_dirs_resolve_against_config_dir(self):
        self._write(
            "main_rel.yaml",
            "artifacts:\n  base_dir: bin\n  resource_dir: /opt/bundle\n"
            "process:\n  working_dir: work\n",
        )
        cfg = load_config(self.config_dir)
        self.assertEqual(cfg.artifacts.base_dir, os.path.join(self.config_dir, "bin"))
        self.assertEqual(cfg.artifacts.resource_dir, "/opt/bundle")
        self.assertEqual(cfg.process.working_dir, os.path.join(self.config_dir, "work"))

    def test_command_templates_and_params(self):
        self._write(
            "main_stream.yaml",
            "command:\n"
            "  target: youtube\n"
            "  templates:\n"
            "    youtube: '-i @videoSource -f @format @liveUrl'\n"
            "  params:\n"
            "    destination: rtmp://example/live/key\n"
            "    output_format: flv\n",
        )
        cfg = load_config(self.config_dir)
        cmd = build_command(
            cfg.command.target,
            build_capture_parameters(cfg.command.params),
            templates=build_templates_from_config(cfg.command.templates),
        )
        self.assertEqual(cmd, "-i screen-capture-recorder -f flv rtmp://example/live/key")

    def test_driver_template_file(self):
        self._write("install.tmpl", "regsvr32 @mode @audio_sniffer_file\n")
        self._write("main_t.yaml", "drivers:\n  template_file: install.tmpl\n")
        cfg = load_config(self.config_dir)
        self.assertEqual(
            cfg.drivers.template_file, os.path.join(self.config_dir, "install.tmpl")
        )
        self.assertEqual(cfg.paths["driver_template"], cfg.drivers.template_file)

    def test_load_errors(self):
        cases = [
            ("unknown section", "main_a.yaml", "camera:\n  index: 0\n", "camera"),
            ("unknown field", "main_a.yaml", "process:\n  priority: 1\n", "process.priority"),
            ("unknown param", "main_a.yaml", "command:\n  params:\n    crf: 1\n", "command.params.crf"),
            ("not a mapping", "main_a.yaml", "- 1\n- 2\n", "mapping"),
            ("missing template", "main_a.yaml", "drivers:\n  template_file: nope.tmpl\n", "template_file"),
        ]
        for label, name, text, expected in cases:
            with self.subTest(case=label):
                path = self._write(name, text)
                try:
                    with self.assertRaises(ConfigError) as cm:
                        load_config(self.config_dir)
                    self.assertIn(expected, str(cm.exception))
                finally:
                    os.remove(path)

    def test_main_file_must_be_unique(self):
        with self.assertRaises(ConfigError):
            load_config(self.config_dir)
        self._write("main_a.yaml", "")
        self._write("main_b.yaml", "")
        with self.assertRaises(ConfigError):
            load_config(self.config_dir)


class TestValidateConfig(unittest.TestCase):
    def setUp(self):
        self.cfg = load_config(SHIPPED_CONFIG_DIR)

    def test_invalid_values_raise_config_error(self):
        cases = [
            ("runtime.max_runtime_s", "runtime", {"max_runtime_s": -1}),
            ("runtime.log_level", "runtime", {"log_level": "loud"}),
            ("artifacts.drivers", "artifacts", {"drivers": ["only-one.dll"]}),
            ("drivers.shell", "drivers", {"shell": "cmd /c"}),
            ("process.line_queue_capacity", "process", {"line_queue_capacity": 0}),
            ("process.stop_token", "process", {"stop_token": ""}),
            ("process.stop_timeout_s", "process", {"stop_timeout_s": "soon"}),
            ("monitor.check_interval_ms", "monitor", {"check_interval_ms": 0}),
            ("monitor.drop_signature", "monitor", {"drop_signature": " "}),
            ("command.target", "command", {"target": ""}),
        ]
        for expected_name, section, patch in cases:
            with self.subTest(field=expected_name):
                block = replace(getattr(self.cfg, section), **patch)
                cfg = replace(self.cfg, **{section: block})
                with self.assertRaises(ConfigError) as cm:
                    validate_config(cfg)
                self.assertIn(expected_name, str(cm.exception))

    def test_invalid_capture_params(self):
        cases = [
            ("command.params.width", {"width": 0}),
            ("command.params.offset_x", {"offset_x": -5}),
            ("command.params.frame_rate", {"frame_rate": "fast"}),
            ("command.params.destination", {"destination": ""}),
        ]
        for expected_name, patch in cases:
            with self.subTest(field=expected_name):
                params = replace(self.cfg.command.params, **patch)
                cfg = replace(self.cfg, command=replace(self.cfg.command, params=params))
                with self.assertRaises(ConfigError) as cm:
                    validate_config(cfg)
                self.assertIn(expected_name, str(cm.exception))


if __name__ == "__main__":
    unittest.main()
