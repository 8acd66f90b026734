#!/usr/bin/env python3

import numpy
from storycutlib.core import utils
from storycutlib.core.errors import AssetNotFoundError
from storycutlib.core.errors import DecodeError
from storycutlib.core.errors import ValidationError
from storycutlib.media import ffmpeg
from storycutlib.media import probe

#============================================

def scale_samples(samples: numpy.ndarray, volume: float) -> numpy.ndarray:
	"""
	Linear gain. Values already inside [-1, 1] come out as exactly volume * sample.
	"""
	scaled = samples.astype(numpy.float32) * numpy.float32(volume)
	return numpy.clip(scaled, -1.0, 1.0)

#============================================

class AudioMixer():
	"""
	Replace a buffer's audio track with a volume-scaled range of another asset.

	The video stream is stream-copied; the extractor has already put it in
	the uniform canvas format. Replacement audio is decoded at the source's
	own rate and channel count, scaled, then converted to the intermediate
	format. Short audio is padded with silence and long audio is cut so the
	segment keeps the video's length.
	"""
	stage = 'audio'

	def __init__(self, resolver, settings, workspace):
		self.resolver = resolver
		self.settings = settings
		self.workspace = workspace

	#============================
	def replace_audio(self, video_buffer, audio_asset_id: str, audio_time_range,
		volume: float = 1.0, on_progress=None, cancel=None):
		if volume is None:
			volume = 1.0
		if not 0.0 <= float(volume) <= 1.0:
			raise ValidationError(f"volume must be in [0, 1], got {volume}",
				stage=self.stage)
		try:
			asset = self.resolver.resolve_asset(audio_asset_id)
		except AssetNotFoundError as exc:
			exc.stage = exc.stage or self.stage
			raise
		video_file = self.workspace.materialize(video_buffer)
		audio_file = self.workspace.materialize(asset.data,
			f"audio-{asset.display_name}")
		pcm_file = self.workspace.make_path("audio-scaled.f32")
		out_file = self.workspace.make_path("audio-mix.mkv")
		try:
			video_info = probe.probe_media(video_file, stage=self.stage)
			if not video_info.has_video:
				if not utils.is_quiet_mode():
					print("audio: no video track, passing buffer through")
				return video_buffer
			audio_info = probe.probe_media(audio_file, stage=self.stage)
			if not audio_info.has_audio:
				raise DecodeError(f"asset {asset.display_name} has no audio track",
					stage=self.stage)
			(start, end) = probe.clamp_time_range(audio_time_range,
				audio_info.duration, stage=self.stage)
			if on_progress is not None:
				on_progress(10.0)
			sample_rate = audio_info.sample_rate
			channels = audio_info.channels
			samples = ffmpeg.decode_pcm(audio_file, sample_rate, channels,
				start=start, duration=end - start, stage=self.stage)
			scaled = scale_samples(samples, float(volume))
			# pad with silence or cut so the track ends with the last video frame
			video_seconds = self._video_seconds(video_file, video_info)
			sample_count = int(round(video_seconds * sample_rate))
			fitted = fit_sample_count(scaled, sample_count)
			fitted.astype('<f4').tofile(pcm_file)
			if on_progress is not None:
				on_progress(50.0)
			if cancel is not None:
				cancel.check(self.stage)
			if not utils.is_quiet_mode():
				print(f"audio: {asset.display_name} {start:.3f}s-{end:.3f}s "
					f"volume {float(volume):.2f}, fitted to {video_seconds:.3f}s")
			args = ['-i', video_file,
				'-f', 'f32le', '-ar', str(sample_rate), '-ac', str(channels),
				'-i', pcm_file,
				'-map', '0:v:0', '-map', '1:a:0', '-c:v', 'copy']
			args += ffmpeg.intermediate_audio_args(self.settings)
			args += ['-f', 'matroska', out_file]
			ffmpeg.run_ffmpeg(args, self.stage)
			result = self.workspace.read_buffer(out_file, video_buffer.name)
			video_buffer.release()
			if on_progress is not None:
				on_progress(100.0)
			return result
		finally:
			self.workspace.cleanup([video_file, audio_file, pcm_file, out_file])

	#============================
	def _video_seconds(self, video_file: str, video_info) -> float:
		frames = probe.count_video_frames(video_file)
		if frames > 0:
			return utils.seconds_from_frames(frames, self.settings.fps)
		return video_info.duration

#============================================

def fit_sample_count(samples: numpy.ndarray, sample_count: int) -> numpy.ndarray:
	"""
	Cut or zero-pad (frames, channels) samples to exactly sample_count frames.
	"""
	if samples.shape[0] >= sample_count:
		return samples[:sample_count]
	padding = numpy.zeros((sample_count - samples.shape[0], samples.shape[1]),
		dtype=samples.dtype)
	return numpy.concatenate([samples, padding], axis=0)
