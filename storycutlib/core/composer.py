#!/usr/bin/env python3

"""
Composition orchestrator: timeline in, published video (or a failure) out.
"""

import traceback
from storycutlib.core import utils
from storycutlib.core import progress
from storycutlib.core.config import RenderSettings
from storycutlib.core.config import load_config
from storycutlib.core.errors import ComposeError
from storycutlib.core.errors import NoValidSegmentsError
from storycutlib.core.loader import load_timeline
from storycutlib.core.result import ComposeResult
from storycutlib.core.validator import TimelineValidator
from storycutlib.media.audio import AudioMixer
from storycutlib.media.buffer import MP4_MIME
from storycutlib.media.buffer import Workspace
from storycutlib.media.concat import Concatenator
from storycutlib.media.extract import SegmentExtractor
from storycutlib.media.finalize import finalize_output
from storycutlib.media.overlay import OverlayCompositor
from storycutlib.media.placeholder import render_placeholder

#============================================

STATE_IDLE = 'Idle'
STATE_VALIDATING = 'Validating'
STATE_PROCESSING_ROWS = 'ProcessingRows'
STATE_CONCATENATING = 'Concatenating'
STATE_PUBLISHING = 'Publishing'
STATE_DONE = 'Done'
STATE_FAILED = 'Failed'

#============================================

class Composer():
	def __init__(self, resolver, config=None):
		self.resolver = resolver
		self.config = config if config is not None else load_config()
		self.subscribers = []
		self.state = STATE_IDLE
		self.channel = None

	#============================
	def subscribe(self, callback) -> None:
		"""
		Receive ProgressEvent objects from every later compose call.
		"""
		self.subscribers.append(callback)

	#============================
	def compose(self, composition, on_progress=None, cancel=None) -> ComposeResult:
		"""
		Run one composition job.

		composition is a Composition or the timeline mapping. on_progress,
		when given, is called as on_progress(stage, percent). Every failure
		comes back as an unsuccessful ComposeResult; nothing is published
		unless the whole job succeeds.
		"""
		channel = progress.ProgressChannel()
		for callback in self.subscribers:
			channel.subscribe(callback)
		if on_progress is not None:
			channel.subscribe(lambda event: on_progress(event.stage, event.percent))
		self.channel = channel
		workspace = None
		segments = []
		try:
			self._set_state(STATE_VALIDATING)
			channel.publish("Initializing", progress.VALIDATION_BAND[0])
			if isinstance(composition, dict):
				composition = load_timeline(composition)
			validator = TimelineValidator(self.config.policy['missing_video'])
			composition = validator.validate(composition)
			channel.publish("Timeline validated", progress.VALIDATION_BAND[1])
			settings = RenderSettings.for_composition(self.config, composition)
			workspace = Workspace(self.config.cache_dir, self.config.keep_temp)

			self._set_state(STATE_PROCESSING_ROWS)
			rows_band = progress.ProgressBand(channel, *progress.ROWS_BAND)
			row_count = len(composition.rows)
			for index, row in enumerate(composition.rows):
				if cancel is not None:
					cancel.check('compose')
				row_band = rows_band.split(row_count, index)
				segment = self._process_row(row, index, row_count, row_band,
					settings, workspace, cancel)
				if segment is not None:
					segments.append(segment)
			if len(segments) == 0:
				raise NoValidSegmentsError("no valid video segments found in timeline",
					stage='compose')

			self._set_state(STATE_CONCATENATING)
			concat_band = progress.ProgressBand(channel, *progress.CONCAT_BAND)
			concat_band.report("Combining video segments", 0)
			segment_count = len(segments)
			concatenator = Concatenator(settings, workspace)
			final_buffer = concatenator.concat(segments,
				on_progress=lambda pct: concat_band.report(
					f"Combining segments ({pct:.0f}%)", pct),
				cancel=cancel)
			segments = []

			self._set_state(STATE_PUBLISHING)
			publish_band = progress.ProgressBand(channel, *progress.PUBLISH_BAND)
			publish_band.report("Saving final video to storage", 0)
			delivered = finalize_output(final_buffer, composition.output_name,
				settings, workspace)
			publish_band.report("Saving final video to storage", 50)
			size_bytes = delivered.size
			output_id = self.resolver.publish_result(delivered.take(),
				composition.output_name, MP4_MIME)
			self._set_state(STATE_DONE)
			channel.publish("Video created successfully", 100.0)
			plural = 's' if segment_count > 1 else ''
			return ComposeResult.ok(
				f"Video composed successfully! {segment_count} segment{plural} processed.",
				{
					'outputId': output_id,
					'outputName': composition.output_name,
					'mimeType': MP4_MIME,
					'sizeBytes': size_bytes,
					'durationSeconds': composition.rows[-1].time_in_clip.end,
					'segmentsProcessed': segment_count,
				})
		except ComposeError as exc:
			self._set_state(STATE_FAILED)
			if not utils.is_quiet_mode():
				print(f"compose failed: {exc.kind}: {exc}")
			return ComposeResult.failure(exc)
		except Exception as exc:
			self._set_state(STATE_FAILED)
			if not utils.is_quiet_mode():
				print(traceback.format_exc())
			return ComposeResult.failure(exc)
		finally:
			for segment in segments:
				segment.release()
			if workspace is not None:
				workspace.close()
			channel.close()

	#============================
	def _process_row(self, row, index: int, row_count: int, row_band,
		settings, workspace, cancel):
		label = f"segment {index + 1}/{row_count}"
		if row.video_asset is None:
			if self.config.policy['missing_video'] == 'skip':
				if not utils.is_quiet_mode():
					print(f"{label} has no video asset, skipping")
				row_band.report(f"Skipping {label}", 100)
				return None
			row_band.report(f"Rendering placeholder for {label}", 0)
			buffer = render_placeholder(row.time_in_clip.duration, settings, workspace)
			row_band.report(f"Rendering placeholder for {label}", 60)
		else:
			video = row.video_asset
			row_band.report(f"Trimming {label}", 0)
			extract_band = row_band.sub_band(0, progress.EXTRACT_SHARE * 100)
			extractor = SegmentExtractor(self.resolver, settings, workspace)
			buffer = extractor.extract(video.asset_id, video.time_range,
				on_progress=lambda pct: extract_band.report(
					f"Trimming {label} ({pct:.0f}%)", pct),
				cancel=cancel)
		try:
			buffer = self._apply_overlays(buffer, row, label, row_band, settings,
				workspace, cancel)
			if row.audio_asset is not None:
				audio = row.audio_asset
				audio_band = row_band.sub_band(85, 100)
				mixer = AudioMixer(self.resolver, settings, workspace)
				buffer = mixer.replace_audio(buffer, audio.asset_id, audio.time_range,
					audio.volume,
					on_progress=lambda pct: audio_band.report(
						f"Replacing audio for {label}", pct),
					cancel=cancel)
		except BaseException:
			if not buffer.consumed:
				buffer.release()
			raise
		row_band.report(f"Finished {label}", 100)
		if not utils.is_quiet_mode():
			print(f"{label} ready: {buffer.size / 1024 / 1024:.2f}MB")
		return buffer

	#============================
	def _apply_overlays(self, buffer, row, label: str, row_band, settings,
		workspace, cancel):
		overlays = list(row.image_overlays) + list(row.text_overlays)
		if len(overlays) == 0:
			return buffer
		overlay_band = row_band.sub_band(60, 85)
		compositor = OverlayCompositor(self.resolver, settings, workspace)
		if self.config.policy['fuse_overlays']:
			return compositor.apply_overlays(buffer, row.image_overlays,
				row.text_overlays,
				on_progress=lambda pct: overlay_band.report(
					f"Applying overlays to {label}", pct),
				cancel=cancel)
		for overlay_index, overlay in enumerate(overlays):
			step_band = overlay_band.split(len(overlays), overlay_index)
			report = _band_reporter(step_band,
				f"Applying overlay {overlay_index + 1}/{len(overlays)} to {label}")
			if overlay_index < len(row.image_overlays):
				buffer = compositor.overlay_image(buffer, overlay,
					on_progress=report, cancel=cancel)
			else:
				buffer = compositor.overlay_text(buffer, overlay,
					on_progress=report, cancel=cancel)
		return buffer

	#============================
	def _set_state(self, state: str) -> None:
		self.state = state
		if self.channel is not None:
			self.channel.set_state(state)

#============================================

def _band_reporter(band, stage: str):
	return lambda percent: band.report(stage, percent)
