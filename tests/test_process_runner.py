import os
import sys
import tempfile
import threading
import time
import unittest

from capture.process import ProcessRunner, build_argv
from core.errors import LaunchError, ProcessNotRunningError

ECHO_UNTIL_Q = (
    "import sys\n"
    "print('ready', flush=True)\n"
    "for line in sys.stdin:\n"
    "    if line.strip() == 'q':\n"
    "        break\n"
    "    print('echo:' + line.strip(), flush=True)\n"
    "print('bye', flush=True)\n"
)

IGNORE_INPUT = "import time\nprint('busy', flush=True)\ntime.sleep(30)\n"


def _wait_until(predicate, timeout_s: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class _Collector:
    def __init__(self, runner: ProcessRunner):
        self.lines = []
        self.exits = []
        self.exited = threading.Event()
        runner.line_received.subscribe(lambda e: self.lines.append(e.text))
        runner.exited.subscribe(self._on_exit)

    def _on_exit(self, event):
        self.exits.append(event)
        self.exited.set()


class TestProcessRunner(unittest.TestCase):
    def setUp(self):
        self.runner = ProcessRunner()
        self.collector = _Collector(self.runner)
        self.cwd = os.getcwd()

    def tearDown(self):
        self.runner.dispose()

    def _start(self, script: str, runner: ProcessRunner | None = None) -> int:
        return (runner or self.runner).start(self.cwd, sys.executable, ["-c", script])

    def test_lines_arrive_in_order_with_stderr_merged(self):
        script = (
            "import sys\n"
            "print('a', flush=True)\n"
            "print('', flush=True)\n"
            "print('b', flush=True)\n"
            "sys.stderr.write('c\\n'); sys.stderr.flush()\n"
            "sys.stdout.write('frame=1\\rframe=2\\n'); sys.stdout.flush()\n"
        )
        self._start(script)
        self.assertTrue(self.collector.exited.wait(5.0))
        self.assertEqual(self.collector.lines, ["a", "b", "c", "frame=1", "frame=2"])
        self.assertEqual(self.collector.exits[0].returncode, 0)
        self.assertEqual(self.runner.lines_read, 5)

    def test_write_line_and_stop_token(self):
        pid = self._start(ECHO_UNTIL_Q)
        self.assertEqual(self.runner.pid, pid)
        self.assertTrue(_wait_until(lambda: "ready" in self.collector.lines))
        self.assertFalse(self.runner.has_exited())
        self.runner.write_line("hello")
        self.runner.write_line("q")
        self.assertTrue(self.runner.wait(5.0))
        self.assertTrue(self.collector.exited.wait(5.0))
        self.assertEqual(self.collector.lines, ["ready", "echo:hello", "bye"])
        self.assertTrue(self.runner.has_exited())

    def test_write_line_without_process(self):
        with self.assertRaises(ProcessNotRunningError):
            self.runner.write_line("q")
        self._start("pass")
        self.assertTrue(self.runner.wait(5.0))
        with self.assertRaises(ProcessNotRunningError):
            self.runner.write_line("q")

    def test_has_exited_before_launch(self):
        self.assertTrue(self.runner.has_exited())
        self.assertFalse(self.runner.is_running)

    def test_launch_errors(self):
        with self.assertRaises(LaunchError):
            self.runner.start(self.cwd, "definitely-not-an-encoder-binary")
        with self.assertRaises(LaunchError):
            self.runner.start(
                os.path.join(self.cwd, "no", "such", "dir"), sys.executable, ["-c", "pass"]
            )
        self.assertTrue(self.runner.has_exited())

    def test_start_while_running(self):
        self._start(IGNORE_INPUT)
        with self.assertRaises(LaunchError):
            self._start("pass")

    def test_terminate_is_idempotent(self):
        self.runner.terminate()
        self._start(IGNORE_INPUT)
        self.assertTrue(_wait_until(lambda: "busy" in self.collector.lines))
        self.runner.terminate(timeout=5.0)
        self.assertTrue(self.runner.has_exited())
        self.assertIsNotNone(self.runner.returncode)
        self.runner.terminate()
        self.assertTrue(self.collector.exited.is_set())

    def test_restart_after_exit(self):
        self._start("print('one', flush=True)")
        self.assertTrue(self.runner.wait(5.0))
        self.assertTrue(self.collector.exited.wait(5.0))
        self.collector.exited.clear()
        self._start("print('two', flush=True)")
        self.assertTrue(self.collector.exited.wait(5.0))
        self.assertEqual(self.collector.lines, ["one", "two"])

    def test_slow_subscriber_drops_oldest_lines(self):
        runner = ProcessRunner(line_queue_capacity=5)
        release = threading.Event()
        received = []
        exited = threading.Event()

        def _slow(event):
            release.wait(5.0)
            received.append(event.text)

        runner.line_received.subscribe(_slow)
        runner.exited.subscribe(lambda _e: exited.set())
        try:
            self._start("for i in range(200):\n    print(f'line{i}', flush=True)\n", runner)
            self.assertTrue(_wait_until(lambda: runner.lines_read == 200))
            self.assertTrue(runner.wait(5.0))
            release.set()
            self.assertTrue(exited.wait(5.0))
            self.assertGreater(runner.dropped_lines, 0)
            self.assertEqual(len(received) + runner.dropped_lines, 200)
            self.assertEqual(received[-1], "line199")
        finally:
            release.set()
            runner.dispose()

    def test_terminate_from_line_subscriber(self):
        threads = []

        def _on_line(event):
            if event.text == "busy":
                threads.append(threading.current_thread())
                self.runner.terminate()

        self.runner.line_received.subscribe(_on_line)
        self._start(IGNORE_INPUT)
        self.assertTrue(self.collector.exited.wait(10.0))
        self.assertIsNotNone(self.collector.exits[0].returncode)
        self.assertTrue(self.runner.has_exited())
        self.assertTrue(_wait_until(lambda: not threads[0].is_alive()))

    def test_dispose_is_idempotent(self):
        self._start(IGNORE_INPUT)
        self.runner.dispose()
        self.runner.dispose()
        self.assertTrue(self.runner.has_exited())
        with self.assertRaises(LaunchError):
            self._start("pass")


class TestBuildArgv(unittest.TestCase):
    def test_sequence_arguments(self):
        self.assertEqual(build_argv("/bin/enc", ["-i", 3]), ["/bin/enc", "-i", "3"])
        self.assertEqual(build_argv("/bin/enc", None), ["/bin/enc"])

    @unittest.skipIf(os.name == "nt", "POSIX argument splitting")
    def test_string_arguments_split_like_a_shell(self):
        argv = build_argv("/bin/enc", '-f dshow -i video="screen-capture-recorder" "out file.mp4"')
        self.assertEqual(
            argv,
            ["/bin/enc", "-f", "dshow", "-i", "video=screen-capture-recorder", "out file.mp4"],
        )


class TestWorkingDirectory(unittest.TestCase):
    def test_process_runs_in_working_dir(self):
        runner = ProcessRunner()
        lines = []
        exited = threading.Event()
        runner.line_received.subscribe(lambda e: lines.append(e.text))
        runner.exited.subscribe(lambda _e: exited.set())
        with tempfile.TemporaryDirectory() as td:
            try:
                runner.start(td, sys.executable, ["-c", "import os; print(os.getcwd(), flush=True)"])
                self.assertTrue(exited.wait(5.0))
            finally:
                runner.dispose()
            self.assertEqual(os.path.realpath(lines[0]), os.path.realpath(td))


if __name__ == "__main__":
    unittest.main()
