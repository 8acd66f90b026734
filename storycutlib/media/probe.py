#!/usr/bin/env python3

#python wrapper for ffprobe

import json
from fractions import Fraction
from storycutlib.core import utils
from storycutlib.core.errors import DecodeError
from storycutlib.core.errors import RangeError

#============================================

class MediaInfo():
	def __init__(self, data: dict):
		self.data = data
		self.streams = data.get('streams', [])
		self.video = self._first_stream('video')
		self.audio = self._first_stream('audio')
		self.duration = self._parse_duration()

	#============================
	def _first_stream(self, codec_type: str) -> dict:
		for stream in self.streams:
			if stream.get('codec_type') != codec_type:
				continue
			# cover art shows up as a single-frame video stream
			if stream.get('disposition', {}).get('attached_pic') == 1:
				continue
			return stream
		return None

	#============================
	def _parse_duration(self) -> float:
		duration = self.data.get('format', {}).get('duration')
		if duration is None:
			for stream in self.streams:
				if stream.get('duration') is not None:
					duration = stream['duration']
					break
		if duration is None:
			return 0.0
		return float(duration)

	#============================
	@property
	def has_video(self) -> bool:
		return self.video is not None

	#============================
	@property
	def has_audio(self) -> bool:
		return self.audio is not None

	#============================
	@property
	def dimensions(self) -> tuple:
		if self.video is None:
			return None
		return (int(self.video['width']), int(self.video['height']))

	#============================
	@property
	def frame_rate(self) -> Fraction:
		if self.video is None:
			return None
		rate = self.video.get('avg_frame_rate') or self.video.get('r_frame_rate')
		if rate is None or rate in ('0/0', '0'):
			return None
		return utils.parse_fps(rate)

	#============================
	@property
	def sample_rate(self) -> int:
		if self.audio is None:
			return None
		return int(self.audio['sample_rate'])

	#============================
	@property
	def channels(self) -> int:
		if self.audio is None:
			return None
		return int(self.audio['channels'])

#============================================

def probe_media(mediafile: str, stage: str = None) -> MediaInfo:
	cmd = ['ffprobe', '-v', 'error', '-show_format', '-show_streams',
		'-of', 'json', mediafile]
	try:
		payload = utils.runCmd(cmd)
	except utils.CommandError as exc:
		raise DecodeError(f"cannot read media: {exc.stderr.strip()[-500:]}",
			stage=stage) from exc
	try:
		data = json.loads(payload.decode('utf-8'))
	except ValueError as exc:
		raise DecodeError("ffprobe returned invalid json", stage=stage) from exc
	return MediaInfo(data)

#============================================

def count_video_frames(mediafile: str) -> int:
	cmd = ['ffprobe', '-v', 'error', '-select_streams', 'v:0', '-count_packets',
		'-show_entries', 'stream=nb_read_packets', '-of', 'json', mediafile]
	payload = utils.runCmd(cmd)
	data = json.loads(payload.decode('utf-8'))
	streams = data.get('streams', [])
	if len(streams) == 0:
		return 0
	return int(streams[0].get('nb_read_packets', 0))

#============================================

def clamp_time_range(time_range, source_duration: float, stage: str = None) -> tuple:
	"""
	Clamp a requested range to the source duration.

	Returns (start, end). A start at or past the end of the source leaves
	nothing to clamp to and raises RangeError.
	"""
	start = time_range.start
	end = time_range.end
	if source_duration <= 0:
		raise RangeError("source has no measurable duration", stage=stage)
	if start >= source_duration:
		raise RangeError(
			f"range starts at {start:.3f}s but source is only "
			f"{source_duration:.3f}s long", stage=stage)
	if end > source_duration:
		if not utils.is_quiet_mode():
			print(f"{stage}: clamping range end {end:.3f}s to source "
				f"duration {source_duration:.3f}s")
		end = source_duration
	return (start, end)
