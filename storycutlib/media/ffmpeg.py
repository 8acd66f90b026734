#!/usr/bin/env python3

"""
ffmpeg plumbing shared by the media stages.

Raw RGB frames move between ffmpeg and Python through pipes: a FrameReader
decodes a container to rgb24 frames on stdout, a FrameWriter encodes rgb24
frames from stdin. Both send stderr to a temp file so a chatty child can
never block on a full pipe.
"""

import subprocess
import tempfile
import numpy
from storycutlib.core import utils
from storycutlib.core.errors import DecodeError
from storycutlib.core.errors import EncodeError

#============================================

FFMPEG_BASE = ['ffmpeg', '-y', '-hide_banner', '-loglevel', 'error']

#============================================

def canvas_filter(settings) -> str:
	"""
	Letterbox any input onto the composition canvas at the target frame rate.
	"""
	width = settings.width
	height = settings.height
	return (
		f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
		f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black,"
		f"setsar=1,fps={settings.fps.numerator}/{settings.fps.denominator}"
	)

#============================================

def video_codec_args(settings) -> list:
	return ['-c:v', settings.video_codec, '-preset', settings.preset,
		'-crf', str(settings.crf), '-pix_fmt', settings.pixel_format]

#============================================

def intermediate_audio_args(settings) -> list:
	return ['-c:a', 'pcm_s16le', '-ar', str(settings.sample_rate),
		'-ac', str(settings.channels)]

#============================================

def channel_layout(channels: int) -> str:
	return 'mono' if channels == 1 else 'stereo'

#============================================

def run_ffmpeg(args: list, stage: str, decode: bool = False) -> bytes:
	"""
	Run one ffmpeg command, mapping a failure onto the stage's error type.
	"""
	try:
		return utils.runCmd(FFMPEG_BASE + args)
	except utils.CommandError as exc:
		error_class = DecodeError if decode else EncodeError
		raise error_class(f"ffmpeg failed: {exc.stderr.strip()[-2000:]}",
			stage=stage) from exc

#============================================

def run_ffmpeg_with_progress(args: list, stage: str, duration: float,
	on_progress=None, cancel=None) -> None:
	"""
	Run ffmpeg with its -progress feed, reporting 0-100 as output time advances.
	"""
	cmd = FFMPEG_BASE + ['-nostats', '-progress', 'pipe:1'] + args
	t0 = utils.report_command_start(cmd)
	with tempfile.TemporaryFile() as err_handle:
		proc = subprocess.Popen([str(arg) for arg in cmd], stdin=subprocess.DEVNULL,
			stdout=subprocess.PIPE, stderr=err_handle)
		try:
			for raw_line in proc.stdout:
				line = raw_line.decode('utf-8', errors='replace').strip()
				if cancel is not None and cancel.cancelled:
					proc.kill()
					proc.wait()
					cancel.check(stage)
				if on_progress is None or duration <= 0:
					continue
				percent = _parse_progress_line(line, duration)
				if percent is not None:
					on_progress(percent)
		finally:
			proc.stdout.close()
			returncode = proc.wait()
		utils.report_command_end(cmd, returncode, t0)
		if returncode != 0:
			err_handle.seek(0)
			stderr = err_handle.read().decode('utf-8', errors='replace')
			raise EncodeError(f"ffmpeg failed: {stderr.strip()[-2000:]}", stage=stage)
	if on_progress is not None:
		on_progress(100.0)

#============================================

def _parse_progress_line(line: str, duration: float) -> float:
	if '=' not in line:
		return None
	(key, value) = line.split('=', 1)
	# out_time_ms is microseconds too, despite its name
	if key not in ('out_time_us', 'out_time_ms'):
		return None
	try:
		seconds = int(value) / 1000000.0
	except ValueError:
		return None
	return min(100.0, max(0.0, seconds / duration * 100.0))

#============================================

def decode_pcm(mediafile: str, sample_rate: int, channels: int,
	start: float = None, duration: float = None, stage: str = None) -> numpy.ndarray:
	"""
	Decode the first audio stream to float32 samples shaped (frames, channels).
	"""
	args = []
	if start is not None:
		args += ['-ss', f"{start:.6f}"]
	if duration is not None:
		args += ['-t', f"{duration:.6f}"]
	args += ['-i', mediafile, '-map', '0:a:0', '-vn', '-sn',
		'-f', 'f32le', '-acodec', 'pcm_f32le',
		'-ar', str(sample_rate), '-ac', str(channels), 'pipe:1']
	raw = run_ffmpeg(args, stage, decode=True)
	samples = numpy.frombuffer(raw, dtype='<f4')
	usable = (samples.size // channels) * channels
	return samples[:usable].reshape(-1, channels)

#============================================

class FrameReader():
	"""
	Decode a container's first video stream into canvas-sized rgb24 frames.
	"""
	def __init__(self, mediafile: str, settings, stage: str = None):
		self.width = settings.width
		self.height = settings.height
		self.frame_size = settings.frame_size
		self.stage = stage
		self.frames_read = 0
		self.cmd = FFMPEG_BASE + ['-i', mediafile, '-map', '0:v:0',
			'-vf', canvas_filter(settings),
			'-f', 'rawvideo', '-pix_fmt', 'rgb24', 'pipe:1']
		self.err_handle = tempfile.TemporaryFile()
		self.t0 = utils.report_command_start(self.cmd)
		self.proc = subprocess.Popen([str(arg) for arg in self.cmd],
			stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=self.err_handle)

	#============================
	def read_frame(self) -> numpy.ndarray:
		data = self.proc.stdout.read(self.frame_size)
		if len(data) < self.frame_size:
			return None
		self.frames_read += 1
		return numpy.frombuffer(data, dtype=numpy.uint8).reshape(
			self.height, self.width, 3)

	#============================
	def __iter__(self):
		while True:
			frame = self.read_frame()
			if frame is None:
				return
			yield frame

	#============================
	def close(self) -> None:
		self.proc.stdout.close()
		returncode = self.proc.wait()
		utils.report_command_end(self.cmd, returncode, self.t0)
		self.err_handle.seek(0)
		stderr = self.err_handle.read().decode('utf-8', errors='replace')
		self.err_handle.close()
		if returncode != 0:
			raise DecodeError(f"ffmpeg decode failed: {stderr.strip()[-2000:]}",
				stage=self.stage)

	#============================
	def abort(self) -> None:
		if self.proc.poll() is None:
			self.proc.kill()
		self.proc.stdout.close()
		self.proc.wait()
		self.err_handle.close()

#============================================

class FrameWriter():
	"""
	Encode canvas-sized rgb24 frames at the target fps into a Matroska file.

	audio_source, when given, is a container whose first audio stream is
	copied unchanged into the output.
	"""
	def __init__(self, outfile: str, settings, audio_source: str = None,
		stage: str = None):
		self.outfile = outfile
		self.frame_size = settings.frame_size
		self.stage = stage
		self.frames_written = 0
		fps = settings.fps
		cmd = FFMPEG_BASE + ['-f', 'rawvideo', '-pix_fmt', 'rgb24',
			'-s', f"{settings.width}x{settings.height}",
			'-r', f"{fps.numerator}/{fps.denominator}", '-i', 'pipe:0']
		if audio_source is not None:
			cmd += ['-i', audio_source, '-map', '0:v:0', '-map', '1:a:0',
				'-c:a', 'copy']
		else:
			cmd += ['-map', '0:v:0']
		cmd += video_codec_args(settings)
		cmd += ['-f', 'matroska', outfile]
		self.cmd = cmd
		self.err_handle = tempfile.TemporaryFile()
		self.t0 = utils.report_command_start(self.cmd)
		self.proc = subprocess.Popen([str(arg) for arg in self.cmd],
			stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=self.err_handle)

	#============================
	def write_frame(self, frame) -> None:
		if hasattr(frame, 'tobytes'):
			data = frame.tobytes()
		else:
			data = bytes(frame)
		if len(data) != self.frame_size:
			raise EncodeError(f"frame has {len(data)} bytes, expected {self.frame_size}",
				stage=self.stage)
		try:
			self.proc.stdin.write(data)
		except BrokenPipeError as exc:
			self.proc.wait()
			raise EncodeError(f"ffmpeg encoder exited early: {self._stderr()}",
				stage=self.stage) from exc
		self.frames_written += 1

	#============================
	def close(self) -> None:
		try:
			self.proc.stdin.close()
		except BrokenPipeError:
			pass
		returncode = self.proc.wait()
		utils.report_command_end(self.cmd, returncode, self.t0)
		stderr = self._stderr()
		self.err_handle.close()
		if returncode != 0:
			raise EncodeError(f"ffmpeg encode failed: {stderr}", stage=self.stage)
		utils.ensure_file_exists(self.outfile)

	#============================
	def abort(self) -> None:
		if self.proc.poll() is None:
			self.proc.kill()
		try:
			self.proc.stdin.close()
		except BrokenPipeError:
			pass
		self.proc.wait()
		self.err_handle.close()

	#============================
	def _stderr(self) -> str:
		self.err_handle.seek(0)
		return self.err_handle.read().decode('utf-8', errors='replace').strip()[-2000:]
