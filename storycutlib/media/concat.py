#!/usr/bin/env python3

import numpy
from storycutlib.core import utils
from storycutlib.core.errors import NoValidSegmentsError
from storycutlib.media import ffmpeg
from storycutlib.media import probe
from storycutlib.media.audio import fit_sample_count

#============================================

class Concatenator():
	"""
	Append uniform segments end to end into one continuous stream.

	Video frames are re-encoded on a running cursor at 1/fps per frame.
	Audio is decoded and appended in order; each segment's audio is padded
	or cut to its own video length so every boundary stays in sync.
	"""
	stage = 'concat'

	def __init__(self, settings, workspace):
		self.settings = settings
		self.workspace = workspace

	#============================
	def concat(self, buffers: list, on_progress=None, cancel=None):
		if len(buffers) == 0:
			raise NoValidSegmentsError("no video segments to concatenate",
				stage=self.stage)
		if len(buffers) == 1:
			return buffers[0]
		video_file = self.workspace.make_path("concat-video.mkv")
		pcm_file = self.workspace.make_path("concat-audio.f32")
		out_file = self.workspace.make_path("concat.mkv")
		writer = ffmpeg.FrameWriter(video_file, self.settings, stage=self.stage)
		try:
			with open(pcm_file, 'wb') as pcm_handle:
				for index, buffer in enumerate(buffers):
					if cancel is not None:
						cancel.check(self.stage)
					self._append_segment(buffer, writer, pcm_handle, cancel)
					if on_progress is not None:
						on_progress((index + 1) * 90.0 / len(buffers))
		except BaseException:
			writer.abort()
			self.workspace.cleanup([video_file, pcm_file])
			raise
		try:
			writer.close()
			if not utils.is_quiet_mode():
				seconds = utils.seconds_from_frames(writer.frames_written,
					self.settings.fps)
				print(f"concat: {len(buffers)} segments, {writer.frames_written} "
					f"frames, {seconds:.3f}s")
			args = ['-i', video_file,
				'-f', 'f32le', '-ar', str(self.settings.sample_rate),
				'-ac', str(self.settings.channels), '-i', pcm_file,
				'-map', '0:v:0', '-map', '1:a:0', '-c:v', 'copy']
			args += ffmpeg.intermediate_audio_args(self.settings)
			args += ['-f', 'matroska', out_file]
			ffmpeg.run_ffmpeg(args, self.stage)
			result = self.workspace.read_buffer(out_file, "concat.mkv")
		finally:
			self.workspace.cleanup([video_file, pcm_file, out_file])
		if on_progress is not None:
			on_progress(100.0)
		return result

	#============================
	def _append_segment(self, buffer, writer, pcm_handle, cancel=None) -> None:
		source_file = self.workspace.materialize(buffer)
		try:
			info = probe.probe_media(source_file, stage=self.stage)
			frames = 0
			if info.has_video:
				reader = ffmpeg.FrameReader(source_file, self.settings, stage=self.stage)
				try:
					for frame in reader:
						if cancel is not None:
							cancel.check(self.stage)
						writer.write_frame(frame)
						frames += 1
					reader.close()
				except BaseException:
					reader.abort()
					raise
			sample_count = int(round(
				utils.seconds_from_frames(frames, self.settings.fps)
				* self.settings.sample_rate))
			channels = self.settings.channels
			if info.has_audio:
				samples = ffmpeg.decode_pcm(source_file, self.settings.sample_rate,
					channels, stage=self.stage)
			else:
				samples = numpy.zeros((0, channels), dtype=numpy.float32)
			samples = fit_sample_count(samples, sample_count)
			pcm_handle.write(samples.astype('<f4').tobytes())
			buffer.release()
		finally:
			self.workspace.cleanup([source_file])

