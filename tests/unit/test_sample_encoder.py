"""
Unit tests for sample_encoder module.

FFmpeg/ffprobe are mocked; the mocks write placeholder files so size-based
predictions can be checked.
"""

import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from lazy_crf.core.modules.analysis.sample_encoder import (
    SampleEncodeError, SampleEncoder, SampleProgress, sample_starts
)

MODULE = 'lazy_crf.core.modules.analysis.sample_encoder'


class TestSampleProgress(unittest.TestCase):

    def test_fraction_without_length_is_zero(self):
        self.assertEqual(SampleProgress().fraction(), 0.0)

    def test_fraction(self):
        progress = SampleProgress()
        progress.set_length(200)
        progress.set_position(50)
        self.assertEqual(progress.fraction(), 0.25)
        progress.set_position(100)
        self.assertEqual(progress.position, 100)
        self.assertEqual(progress.fraction(), 0.5)

    def test_position_never_moves_backwards(self):
        progress = SampleProgress(100)
        progress.set_position(60)
        progress.set_position(40)
        self.assertEqual(progress.position, 60)

    def test_fraction_capped_at_one(self):
        progress = SampleProgress(10)
        progress.set_position(25)
        self.assertEqual(progress.fraction(), 1.0)


class TestSampleStarts(unittest.TestCase):

    def test_single_sample_in_the_middle(self):
        self.assertEqual(sample_starts(620, 1, 20), [300.0])

    def test_evenly_spaced(self):
        starts = sample_starts(420, 3, 20)
        self.assertEqual(starts, [100.0, 200.0, 300.0])

    def test_short_input_uses_whole_file(self):
        self.assertEqual(sample_starts(50, 3, 20), [])
        self.assertEqual(sample_starts(60, 3, 20), [])


class TestSampleEncoder(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.input_file = self.temp_dir / "movie.mkv"
        self.input_file.write_bytes(b"\0" * 1000)
        self.encoder = SampleEncoder(self.input_file, sample_duration=20, temp_dir=self.temp_dir)
        self.vmaf_scores = [94.0, 96.0]

    def tearDown(self):
        self.encoder.close()
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def fake_extract(self, cmd, timeout=None):
        Path(cmd[-1]).write_bytes(b"\0" * 100)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def fake_encode(self, cmd, on_progress=None):
        if on_progress:
            on_progress(10.0)
            on_progress(20.0)
        Path(cmd[-1]).write_bytes(b"\0" * 40)
        return 0, ""

    def fake_vmaf(self, reference, distorted, n_threads=0, on_progress=None):
        if on_progress:
            on_progress(20.0)
        return self.vmaf_scores.pop(0), "VMAF score: ..."

    def test_predictions_from_samples(self):
        progress = SampleProgress()
        with patch(f'{MODULE}.get_duration_sec', return_value=600.0), \
             patch(f'{MODULE}.run_command', side_effect=self.fake_extract), \
             patch(f'{MODULE}.run_ffmpeg_with_progress', side_effect=self.fake_encode), \
             patch(f'{MODULE}.compute_vmaf_score', side_effect=self.fake_vmaf), \
             patch(f'{MODULE}.time.monotonic', side_effect=[0.0, 10.0, 10.0, 20.0]):
            result = self.encoder.sample(self.input_file, 30, 8, 2, progress)

        self.assertAlmostEqual(result.vmaf, 95.0)
        self.assertAlmostEqual(result.predicted_encode_percent, 40.0)
        self.assertEqual(result.predicted_encode_size, 400)
        # 20s of encoding for 40s of samples over a 600s input
        self.assertAlmostEqual(result.predicted_encode_time, 300.0)
        self.assertEqual(progress.length, 2 * 2 * 20000)
        self.assertEqual(progress.fraction(), 1.0)

    def test_encode_command(self):
        cmd = self.encoder.build_encode_cmd(Path("clip.mkv"), Path("out.mkv"), 32, 6)
        self.assertEqual(cmd[cmd.index("-c:v") + 1], "libsvtav1")
        self.assertEqual(cmd[cmd.index("-crf") + 1], "32")
        self.assertEqual(cmd[cmd.index("-preset") + 1], "6")
        self.assertEqual(cmd[-1], "out.mkv")

    def test_clips_reused_across_probes(self):
        with patch(f'{MODULE}.get_duration_sec', return_value=600.0), \
             patch(f'{MODULE}.run_command', side_effect=self.fake_extract) as mock_extract, \
             patch(f'{MODULE}.run_ffmpeg_with_progress', side_effect=self.fake_encode), \
             patch(f'{MODULE}.compute_vmaf_score', return_value=(95.0, "")):
            self.encoder.sample(self.input_file, 30, 8, 2, SampleProgress())
            self.encoder.sample(self.input_file, 40, 8, 2, SampleProgress())

        self.assertEqual(mock_extract.call_count, 2)

    def test_short_input_sampled_whole(self):
        with patch(f'{MODULE}.get_duration_sec', return_value=30.0), \
             patch(f'{MODULE}.run_command') as mock_extract, \
             patch(f'{MODULE}.run_ffmpeg_with_progress', side_effect=self.fake_encode), \
             patch(f'{MODULE}.compute_vmaf_score', return_value=(97.0, "")) as mock_vmaf:
            result = self.encoder.sample(self.input_file, 30, 8, 3, SampleProgress())

        mock_extract.assert_not_called()
        self.assertEqual(mock_vmaf.call_args[0][0], self.input_file)
        self.assertAlmostEqual(result.predicted_encode_percent, 4.0)

    def test_encode_failure_carries_ffmpeg_error(self):
        with patch(f'{MODULE}.get_duration_sec', return_value=600.0), \
             patch(f'{MODULE}.run_command', side_effect=self.fake_extract), \
             patch(f'{MODULE}.run_ffmpeg_with_progress',
                   return_value=(1, "frame=1\n[libsvtav1] Error: invalid crf\n")):
            with self.assertRaises(SampleEncodeError) as ctx:
                self.encoder.sample(self.input_file, 30, 8, 1, SampleProgress())
        self.assertIn("[libsvtav1] Error: invalid crf", str(ctx.exception))

    def test_vmaf_failure(self):
        with patch(f'{MODULE}.get_duration_sec', return_value=600.0), \
             patch(f'{MODULE}.run_command', side_effect=self.fake_extract), \
             patch(f'{MODULE}.run_ffmpeg_with_progress', side_effect=self.fake_encode), \
             patch(f'{MODULE}.compute_vmaf_score', return_value=(None, "No such filter: 'libvmaf'")):
            with self.assertRaises(SampleEncodeError) as ctx:
                self.encoder.sample(self.input_file, 30, 8, 1, SampleProgress())
        self.assertIn("No such filter", str(ctx.exception))

    def test_extract_failure(self):
        failed = subprocess.CompletedProcess([], 1, "", "Invalid data found when processing input")
        with patch(f'{MODULE}.get_duration_sec', return_value=600.0), \
             patch(f'{MODULE}.run_command', return_value=failed):
            with self.assertRaises(SampleEncodeError) as ctx:
                self.encoder.sample(self.input_file, 30, 8, 1, SampleProgress())
        self.assertIn("Invalid data found", str(ctx.exception))

    def test_missing_ffmpeg_is_sample_error(self):
        with patch(f'{MODULE}.get_duration_sec', return_value=600.0), \
             patch(f'{MODULE}.run_command', side_effect=FileNotFoundError(2, "No such file", "ffmpeg")):
            with self.assertRaises(SampleEncodeError) as ctx:
                self.encoder.sample(self.input_file, 30, 8, 1, SampleProgress())
        self.assertIsInstance(ctx.exception.__cause__, FileNotFoundError)
        self.assertIn("crf 30", str(ctx.exception))

    def test_encode_timeout_is_sample_error(self):
        with patch(f'{MODULE}.get_duration_sec', return_value=600.0), \
             patch(f'{MODULE}.run_command', side_effect=self.fake_extract), \
             patch(f'{MODULE}.run_ffmpeg_with_progress',
                   side_effect=subprocess.TimeoutExpired("ffmpeg", 30)):
            with self.assertRaises(SampleEncodeError):
                self.encoder.sample(self.input_file, 30, 8, 1, SampleProgress())

    def test_unreadable_input_is_sample_error(self):
        self.input_file.unlink()
        with patch(f'{MODULE}.get_duration_sec', return_value=600.0):
            with self.assertRaises(SampleEncodeError):
                self.encoder.sample(self.input_file, 30, 8, 1, SampleProgress())

    def test_unknown_duration(self):
        with patch(f'{MODULE}.get_duration_sec', return_value=0.0):
            with self.assertRaises(SampleEncodeError):
                self.encoder.sample(self.input_file, 30, 8, 1, SampleProgress())

    def test_close_removes_work_dir(self):
        work_dir = self.encoder.work_dir
        self.assertTrue(work_dir.exists())
        self.encoder.close()
        self.assertFalse(work_dir.exists())


if __name__ == '__main__':
    unittest.main()
