#!/usr/bin/env python3
"""
Unit tests for StemQueue core modules.
Tests cover: input parsing, security utils, error codes, separation helpers,
configuration, tool environment, events, database, power inhibitor.
"""

import sys
import os
import tempfile
import subprocess
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest
from unittest import mock

from stemqueue.core.constants import (
    ErrorCode, ComputeBackend, MediaSource, JobStatus,
    MAX_FOLDER_NAME_LEN, BYTES_PER_WORKER, DEMUCS_MODEL_NAME,
)
from stemqueue.core.url_parse import (
    extract_video_id, is_youtube_url, parse_inputs, parse_input_lines, parse_input_file,
    local_identity,
)
from stemqueue.core.security_utils import sanitize_title, output_folder_name, safe_output_path
from stemqueue.core.error_codes import JobError, OperationCancelled, ProcessSignalled, is_cancellation
from stemqueue.core.separation import (
    get_job_count, build_demucs_args, find_demucs_output_dir,
    stem_paths, verify_stems, build_mix_args,
)
from stemqueue.core.config import AppConfig
from stemqueue.core.tool_paths import build_child_env, demucs_exe_name
from stemqueue.core.events import EventChannel
from stemqueue.core.models import StatusRecord
from stemqueue.core.power import PowerInhibitor


class TestInputParsing(unittest.TestCase):
    """Test YouTube URL parsing and job construction."""

    def test_standard_url(self):
        self.assertEqual(
            extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ"),
            "dQw4w9WgXcQ",
        )

    def test_short_url(self):
        self.assertEqual(extract_video_id("https://youtu.be/dQw4w9WgXcQ"), "dQw4w9WgXcQ")

    def test_url_with_params(self):
        self.assertEqual(
            extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=120"),
            "dQw4w9WgXcQ",
        )

    def test_invalid_url(self):
        self.assertIsNone(extract_video_id("https://www.google.com"))
        self.assertIsNone(extract_video_id(""))
        self.assertFalse(is_youtube_url("not a url"))

    def test_parse_inputs_mixed(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            song = Path(tmpdir) / "My Song.mp3"
            song.write_bytes(b"fake")
            notes = Path(tmpdir) / "notes.pdf"
            notes.write_bytes(b"fake")

            jobs = parse_inputs([
                "https://youtu.be/dQw4w9WgXcQ",
                str(song),
                str(notes),
                "not a url",
                "",
            ])

        self.assertEqual(len(jobs), 2)
        self.assertEqual(jobs[0].identity, "dQw4w9WgXcQ")
        self.assertEqual(jobs[0].media_source, MediaSource.REMOTE)
        self.assertEqual(jobs[1].media_source, MediaSource.LOCAL)
        self.assertEqual(jobs[1].title, "My Song")
        self.assertTrue(jobs[1].identity.startswith("local-"))
        self.assertEqual(jobs[1].local_path, str(song.resolve()))

    def test_title_lookup(self):
        jobs = parse_input_lines("https://youtu.be/dQw4w9WgXcQ\n",
                                 title_lookup=lambda vid: "Never Gonna")
        self.assertEqual(jobs[0].title, "Never Gonna")

    def test_title_lookup_fallback(self):
        jobs = parse_inputs(["https://youtu.be/dQw4w9WgXcQ"], title_lookup=lambda vid: "")
        self.assertEqual(jobs[0].title, "dQw4w9WgXcQ")

    def test_parse_input_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            song = Path(tmpdir) / "Track.wav"
            song.write_bytes(b"fake")
            list_file = Path(tmpdir) / "queue.txt"
            list_file.write_text(
                "https://www.youtube.com/watch?v=dQw4w9WgXcQ\n"
                "\n"
                f"{song}\n"
                "garbage line\n",
                encoding="utf-8",
            )
            jobs = parse_input_file(list_file)

        self.assertEqual([j.media_source for j in jobs], [MediaSource.REMOTE, MediaSource.LOCAL])
        self.assertEqual(jobs[0].identity, "dQw4w9WgXcQ")
        self.assertEqual(jobs[1].title, "Track")

    def test_local_identity_stable(self):
        p = Path("/tmp/some/song.wav")
        self.assertEqual(local_identity(p), local_identity(p))
        self.assertNotEqual(local_identity(p), local_identity(Path("/tmp/other.wav")))


class TestSecurityUtils(unittest.TestCase):
    """Test output folder naming."""

    def test_sanitize_title_special_chars(self):
        result = sanitize_title('Song: "Live" <2024>')
        self.assertNotIn('"', result)
        self.assertNotIn('<', result)
        self.assertNotIn(':', result)

    def test_sanitize_title_path_traversal(self):
        self.assertNotIn('..', sanitize_title("../../../etc/passwd"))

    def test_sanitize_title_empty(self):
        self.assertEqual(sanitize_title(""), "")
        self.assertEqual(sanitize_title("..."), "")

    def test_folder_name_has_identity(self):
        self.assertEqual(output_folder_name("My Song", "abc123def45"), "My Song-abc123def45")

    def test_folder_name_long_title_keeps_identity(self):
        name = output_folder_name("A" * 500, "abc123def45")
        self.assertLessEqual(len(name), MAX_FOLDER_NAME_LEN)
        self.assertTrue(name.endswith("-abc123def45"))

    def test_folder_name_empty_title(self):
        self.assertEqual(output_folder_name("", "abc123def45"), "job-abc123def45")

    def test_safe_output_path_traversal(self):
        root = Path(tempfile.gettempdir()) / "stemqueue_out"
        result = safe_output_path(root, "../../etc/passwd", "abc123def45")
        self.assertIn(root.resolve(), result.resolve().parents)


class TestErrorCodes(unittest.TestCase):
    """Test error classification."""

    def test_job_error_message(self):
        err = JobError(ErrorCode.TOOL_FAILED, "boom")
        self.assertEqual(err.code, ErrorCode.TOOL_FAILED)
        self.assertIn("ERR_TOOL_FAILED", str(err))

    def test_cancellation_errors(self):
        self.assertTrue(is_cancellation(OperationCancelled()))
        self.assertTrue(is_cancellation(ProcessSignalled("demucs", 9)))
        self.assertFalse(is_cancellation(JobError(ErrorCode.DOWNLOAD_FAILED, "x")))
        self.assertFalse(is_cancellation(ValueError("x")))


class TestSeparationHelpers(unittest.TestCase):
    """Test demucs/ffmpeg argument building and output discovery."""

    def test_job_count_bounds(self):
        gb = BYTES_PER_WORKER
        self.assertEqual(get_job_count(free_bytes=0, cpu_count=8), 1)
        self.assertEqual(get_job_count(free_bytes=100 * gb, cpu_count=2), 2)
        self.assertEqual(get_job_count(free_bytes=3 * gb, cpu_count=16), 3)
        self.assertEqual(get_job_count(free_bytes=100 * gb, cpu_count=64), 4)

    def test_job_count_always_in_range(self):
        gb = BYTES_PER_WORKER
        for mem in (0, gb // 2, gb, 2 * gb, 7 * gb, 50 * gb):
            for cpus in (1, 2, 3, 4, 8, 32):
                n = get_job_count(free_bytes=mem, cpu_count=cpus)
                self.assertGreaterEqual(n, 1)
                self.assertLessEqual(n, 4)
                self.assertLessEqual(n, cpus)
                self.assertLessEqual(n, max(1, mem // gb))

    def test_demucs_args_auto(self):
        args = build_demucs_args(Path("/w/yt-audio"), 2)
        self.assertEqual(args, ["/w/yt-audio", "-n", DEMUCS_MODEL_NAME, "-j", "2"])

    def test_demucs_args_cpu_and_repo(self):
        args = build_demucs_args(Path("/w/a.wav"), 1, ComputeBackend.CPU, Path("/models"))
        self.assertEqual(args[-4:], ["-d", "cpu", "--repo", "/models"])

    def test_find_output_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            ws = Path(tmpdir)
            with self.assertRaises(JobError) as ctx:
                find_demucs_output_dir(ws)
            self.assertEqual(ctx.exception.code, ErrorCode.MISSING_OUTPUT)

            track = ws / "separated" / DEMUCS_MODEL_NAME / "yt-audio"
            track.mkdir(parents=True)
            self.assertEqual(find_demucs_output_dir(ws), track)

    def test_verify_stems(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paths = stem_paths(Path(tmpdir))
            self.assertEqual(set(paths), {"bass", "drums", "other", "vocals"})
            for name in ("bass", "drums", "other"):
                paths[name].write_bytes(b"x")
            with self.assertRaises(JobError) as ctx:
                verify_stems(paths)
            self.assertIn("vocals", ctx.exception.message)

            paths["vocals"].write_bytes(b"x")
            verify_stems(paths)

    def test_mix_args(self):
        stems = stem_paths(Path("/s"))
        args = build_mix_args(stems, Path("/w/instrumental.wav"))
        self.assertEqual(args, [
            "-i", str(Path("/s/bass.wav")),
            "-i", str(Path("/s/drums.wav")),
            "-i", str(Path("/s/other.wav")),
            "-filter_complex", "amix=inputs=3:normalize=0",
            str(Path("/w/instrumental.wav")),
        ])
        self.assertNotIn(str(stems["vocals"]), args)


class TestConfig(unittest.TestCase):
    """Test configuration defaults and validation."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_defaults(self):
        config = AppConfig(self.path)
        self.assertEqual(config.output_root, Path.home() / "Music" / "StemQueue")
        self.assertEqual(config.pytorch_backend, ComputeBackend.AUTO)
        self.assertTrue(config.can_show_donate_popup)

    def test_invalid_backend(self):
        config = AppConfig(self.path)
        config.pytorch_backend = "cuda-please"
        self.assertEqual(config.pytorch_backend, ComputeBackend.AUTO)

    def test_persisted(self):
        config = AppConfig(self.path)
        config.pytorch_backend = ComputeBackend.CPU
        config.can_show_donate_popup = False
        config.output_root = str(Path(self.tmpdir.name) / "out")

        reloaded = AppConfig(self.path)
        self.assertEqual(reloaded.pytorch_backend, ComputeBackend.CPU)
        self.assertFalse(reloaded.can_show_donate_popup)
        self.assertEqual(reloaded.output_root, Path(self.tmpdir.name) / "out")

    def test_corrupt_file_uses_defaults(self):
        self.path.write_text("{not json")
        config = AppConfig(self.path)
        self.assertEqual(config.pytorch_backend, ComputeBackend.AUTO)


class TestToolEnvironment(unittest.TestCase):
    """Test the supervised child environment."""

    def test_inherits_host_vars(self):
        host = {"PATH": "/usr/bin", "TMP": "/t", "CUDA_PATH": "/cuda", "SECRET": "x"}
        env = build_child_env(None, host)
        self.assertEqual(env, {"PATH": "/usr/bin", "TMP": "/t", "CUDA_PATH": "/cuda"})

    def test_bundle_overrides_path(self):
        env = build_child_env(Path("/bundle"), {"PATH": "/usr/bin", "TEMP": "/t"})
        self.assertEqual(env["PATH"].split(os.pathsep), [
            str(Path("/bundle/demucs-cxfreeze")),
            str(Path("/bundle/ffmpeg/bin")),
        ])
        self.assertEqual(env["TEMP"], "/t")

    def test_demucs_exe_name(self):
        self.assertEqual(demucs_exe_name(None), "demucs")
        self.assertEqual(demucs_exe_name(Path("/bundle")), "demucs-cxfreeze")


class TestEventChannel(unittest.TestCase):
    """Test observer registration and delivery."""

    def test_subscribe_emit_unsubscribe(self):
        channel = EventChannel("test")
        received = []
        handler = channel.subscribe(received.append)
        channel.emit(1)
        channel.unsubscribe(handler)
        channel.emit(2)
        self.assertEqual(received, [1])
        channel.unsubscribe(handler)  # no-op

    def test_failing_handler_does_not_stop_delivery(self):
        channel = EventChannel("test")
        received = []

        def broken(_payload):
            raise RuntimeError("handler bug")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        with self.assertLogs("stemqueue.core.events", level="ERROR"):
            channel.emit("x")
        self.assertEqual(received, ["x"])


class TestDatabase(unittest.TestCase):
    """Test SQLite status persistence."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        from stemqueue.core.db_sqlite import Database
        self.db = Database(Path(self.tmpdir.name) / "status.db")

    def tearDown(self):
        self.db.close()
        self.tmpdir.cleanup()

    def test_replace_and_load(self):
        self.db.replace_statuses({
            "a": StatusRecord(JobStatus.DONE, "/out/a"),
            "b": StatusRecord(JobStatus.DONE, "/out/b"),
        })
        self.db.replace_statuses({"b": StatusRecord(JobStatus.DONE, "/out/b2")})
        loaded = self.db.load_statuses()
        self.assertEqual(list(loaded), ["b"])
        self.assertEqual(loaded["b"].result_path, "/out/b2")

    def test_empty(self):
        self.assertEqual(self.db.load_statuses(), {})


class TestPowerInhibitor(unittest.TestCase):
    """Test the sleep blocker without touching the real power manager."""

    def test_unsupported_platform(self):
        inhibitor = PowerInhibitor(platform="plan9")
        with inhibitor:
            self.assertFalse(inhibitor.active)
        self.assertFalse(inhibitor.active)

    def test_linux_helper(self):
        helper = mock.Mock()
        helper.wait.side_effect = [subprocess.TimeoutExpired("systemd-inhibit", 0.2), 0]
        with mock.patch("stemqueue.core.power.shutil.which", return_value="/usr/bin/systemd-inhibit"), \
                mock.patch("stemqueue.core.power.subprocess.Popen", return_value=helper) as popen:
            with PowerInhibitor(reason="Testing", platform="linux") as inhibitor:
                self.assertTrue(inhibitor.active)
                args = popen.call_args[0][0]
                self.assertEqual(args[0], "systemd-inhibit")
                self.assertIn("--why=Testing", args)
        helper.terminate.assert_called_once()
        self.assertFalse(inhibitor.active)

    def test_helper_exiting_immediately_is_not_active(self):
        helper = mock.Mock()
        helper.wait.return_value = 1
        with mock.patch("stemqueue.core.power.shutil.which", return_value="/usr/bin/systemd-inhibit"), \
                mock.patch("stemqueue.core.power.subprocess.Popen", return_value=helper):
            inhibitor = PowerInhibitor(platform="linux")
            with self.assertLogs("stemqueue.core.power", level="WARNING") as logs:
                self.assertFalse(inhibitor.acquire())
        self.assertIn("exited immediately", "\n".join(logs.output))
        self.assertFalse(inhibitor.active)
        inhibitor.release()
        helper.terminate.assert_not_called()

    def test_helper_failure_is_not_raised(self):
        with mock.patch("stemqueue.core.power.shutil.which", return_value="/usr/bin/caffeinate"), \
                mock.patch("stemqueue.core.power.subprocess.Popen", side_effect=OSError("nope")):
            inhibitor = PowerInhibitor(platform="darwin")
            with self.assertLogs("stemqueue.core.power", level="WARNING"):
                self.assertFalse(inhibitor.acquire())
            inhibitor.release()


if __name__ == "__main__":
    unittest.main()
