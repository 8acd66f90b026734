#!/usr/bin/env python3

from storycutlib.core import utils
from storycutlib.core.errors import AssetNotFoundError
from storycutlib.media import ffmpeg
from storycutlib.media import probe
from storycutlib.media.buffer import MediaBuffer

#============================================

class SegmentExtractor():
	"""
	Trim a source asset to a time range and normalize it to the canvas.

	The result is a standalone Matroska buffer starting at t=0 with H.264
	video at the target size and fps and PCM audio at the configured rate.
	A source without audio gets a silent track and a source without video
	gets a black canvas, so every segment has the same stream layout.
	"""
	stage = 'extract'

	def __init__(self, resolver, settings, workspace):
		self.resolver = resolver
		self.settings = settings
		self.workspace = workspace

	#============================
	def extract(self, asset_id: str, time_range, on_progress=None,
		cancel=None) -> MediaBuffer:
		try:
			asset = self.resolver.resolve_asset(asset_id)
		except AssetNotFoundError as exc:
			exc.stage = exc.stage or self.stage
			raise
		source_file = self.workspace.materialize(asset.data,
			f"source-{asset.display_name}")
		out_file = self.workspace.make_path("extract.mkv")
		try:
			info = probe.probe_media(source_file, stage=self.stage)
			(start, end) = probe.clamp_time_range(time_range, info.duration,
				stage=self.stage)
			duration = end - start
			if not utils.is_quiet_mode():
				print(f"extract: {asset.display_name} {start:.3f}s-{end:.3f}s")
			args = self._build_args(source_file, out_file, info, start, duration)
			ffmpeg.run_ffmpeg_with_progress(args, self.stage, duration,
				on_progress=on_progress, cancel=cancel)
			return self.workspace.read_buffer(out_file, f"extract-{asset_id}.mkv")
		finally:
			self.workspace.cleanup([source_file, out_file])

	#============================
	def _build_args(self, source_file: str, out_file: str, info,
		start: float, duration: float) -> list:
		settings = self.settings
		args = ['-ss', f"{start:.6f}", '-t', f"{duration:.6f}", '-i', source_file]
		next_input = 1
		if info.has_video:
			video_map = '0:v:0'
		else:
			args += ['-f', 'lavfi', '-t', f"{duration:.6f}", '-i',
				f"color=c=black:s={settings.width}x{settings.height}"
				f":r={settings.fps.numerator}/{settings.fps.denominator}"]
			video_map = f"{next_input}:v:0"
			next_input += 1
		if info.has_audio:
			audio_map = '0:a:0'
		else:
			layout = ffmpeg.channel_layout(settings.channels)
			args += ['-f', 'lavfi', '-t', f"{duration:.6f}", '-i',
				f"anullsrc=r={settings.sample_rate}:cl={layout}"]
			audio_map = f"{next_input}:a:0"
		args += ['-map', video_map, '-map', audio_map]
		args += ['-sn', '-map_chapters', '-1', '-map_metadata', '-1']
		args += ['-vf', ffmpeg.canvas_filter(settings)]
		args += ffmpeg.video_codec_args(settings)
		args += ffmpeg.intermediate_audio_args(settings)
		args += ['-t', f"{duration:.6f}", '-f', 'matroska', out_file]
		return args
