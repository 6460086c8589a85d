"""Tests for the FFmpeg encoder with the subprocess layer patched."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from video_pipeline.core.config import Settings
from video_pipeline.core.exceptions import EncodeError
from video_pipeline.modules.transcoding.ffmpeg import FFmpegEncoder, output_path_for, trim_tail

SUBPROCESS = "asyncio.create_subprocess_exec"


def _process(returncode=0, stderr=b"", on_communicate=None):
    process = MagicMock()
    process.returncode = returncode

    async def communicate():
        if on_communicate:
            on_communicate()
        return None, stderr

    process.communicate = communicate
    process.wait = AsyncMock(return_value=returncode)
    return process


class TestCommand:
    """Command construction."""

    def test_build_encode_command(self, tmp_path):
        cmd = FFmpegEncoder("/usr/bin/ffmpeg").build_encode_command(tmp_path / "x.mp4", tmp_path / "x.avi")

        assert cmd[0] == "/usr/bin/ffmpeg"
        assert "-y" in cmd
        assert cmd[cmd.index("-i") + 1] == str(tmp_path / "x.mp4")
        assert cmd[-1] == str(tmp_path / "x.avi")

    def test_output_path_for(self, tmp_path):
        assert output_path_for(tmp_path / "in" / "x.mp4", "webm", tmp_path / "out") == tmp_path / "out" / "x.webm"

    def test_from_settings(self):
        encoder = FFmpegEncoder.from_settings(Settings(FFMPEG_PATH="/opt/ffmpeg", ENCODE_TIMEOUT_SECONDS=30))

        assert encoder.ffmpeg_path == "/opt/ffmpeg"
        assert encoder.timeout == 30

    def test_trim_tail(self):
        assert trim_tail("") == ""
        assert trim_tail("abcdef", limit=3) == "def"


class TestEncode:
    """Subprocess outcomes map onto the encoder contract."""

    @pytest.mark.asyncio
    async def test_success_returns_output(self, tmp_path):
        source = tmp_path / "x.mp4"
        source.write_bytes(b"in")
        out_dir = tmp_path / "encoded"
        expected = out_dir / "x.avi"
        process = _process(on_communicate=lambda: expected.write_bytes(b"out"))

        with patch(SUBPROCESS, new=AsyncMock(return_value=process)) as spawn:
            result = await FFmpegEncoder().encode(source, "avi", out_dir)

        assert result == expected
        assert spawn.await_args.args[-1] == str(expected)

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_stderr(self, tmp_path):
        process = _process(returncode=1, stderr=b"Invalid data found when processing input\n")

        with patch(SUBPROCESS, new=AsyncMock(return_value=process)):
            with pytest.raises(EncodeError, match="Invalid data found") as exc_info:
                await FFmpegEncoder().encode(tmp_path / "x.mp4", "webm", tmp_path / "encoded")

        assert exc_info.value.format == "webm"

    @pytest.mark.asyncio
    async def test_missing_output_raises(self, tmp_path):
        with patch(SUBPROCESS, new=AsyncMock(return_value=_process())):
            with pytest.raises(EncodeError, match="no output"):
                await FFmpegEncoder().encode(tmp_path / "x.mp4", "mkv", tmp_path / "encoded")

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, tmp_path):
        encoder = FFmpegEncoder(ffmpeg_path=str(tmp_path / "no-such-ffmpeg"))

        with pytest.raises(EncodeError, match="Cannot start ffmpeg"):
            await encoder.encode(tmp_path / "x.mp4", "mp4", tmp_path / "encoded")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        process = _process(returncode=None)

        async def hang():
            await asyncio.sleep(10)

        process.communicate = hang

        with patch(SUBPROCESS, new=AsyncMock(return_value=process)):
            with pytest.raises(EncodeError, match="timed out"):
                await FFmpegEncoder(timeout=0.05).encode(tmp_path / "x.mp4", "avi", tmp_path / "encoded")

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()
