#!/usr/bin/env python3

import os
import yaml
from storycutlib.core import utils
from storycutlib.core import timeline
from storycutlib.core.errors import ValidationError

#============================================

class TimelineLoader():
	"""
	Build a Composition from the timeline JSON shape.

	Accepts a mapping or a path to a .json/.yaml file. Keys follow the
	planner's camelCase names; the older tool-call aliases (timeline,
	outputFileName, fileId, fileName) are accepted as well.
	"""
	def __init__(self, source):
		self.source = source

	#============================
	def load(self) -> timeline.Composition:
		if isinstance(self.source, dict):
			data = self.source
		else:
			data = self._load_file(self.source)
		return self._parse_composition(data)

	#============================
	def _load_file(self, filepath: str) -> dict:
		utils.ensure_file_exists(filepath)
		file_size = os.path.getsize(filepath)
		if file_size > 10 ** 7:
			raise ValidationError("timeline file is larger than 10MB", stage='load')
		with open(filepath, 'r') as data_file:
			data = yaml.safe_load(data_file)
		if not isinstance(data, dict):
			raise ValidationError("timeline must be a mapping at the top level",
				stage='load')
		return data

	#============================
	def _parse_composition(self, data: dict) -> timeline.Composition:
		raw_rows = data.get('rows', data.get('timeline'))
		if raw_rows is None:
			raw_rows = []
		if not isinstance(raw_rows, list):
			self._fail('rows', "must be a list")
		rows = []
		for index, raw_row in enumerate(raw_rows):
			rows.append(self._parse_row(raw_row, f"rows[{index}]"))
		output_name = data.get('outputName', data.get('outputFileName'))
		if output_name is None or str(output_name).strip() == '':
			output_name = 'composition.mp4'
		width = self._parse_dimension(data.get('targetWidth'),
			timeline.DEFAULT_WIDTH, 'targetWidth')
		height = self._parse_dimension(data.get('targetHeight'),
			timeline.DEFAULT_HEIGHT, 'targetHeight')
		fps = data.get('targetFps')
		if fps is None:
			fps = timeline.DEFAULT_FPS
		try:
			fps_fraction = utils.parse_fps(fps)
		except (RuntimeError, ValueError, ZeroDivisionError):
			self._fail('targetFps', "must be a number or fraction string")
		if fps_fraction <= 0:
			self._fail('targetFps', "must be positive")
		return timeline.Composition(rows, str(output_name), target_width=width,
			target_height=height, target_fps=fps)

	#============================
	def _parse_dimension(self, value, default: int, path: str) -> int:
		if value is None:
			return default
		if isinstance(value, bool) or not isinstance(value, (int, float)):
			self._fail(path, "must be a number")
		if int(value) <= 0:
			self._fail(path, "must be positive")
		return int(value)

	#============================
	def _parse_row(self, raw_row, path: str) -> timeline.TimelineRow:
		if not isinstance(raw_row, dict):
			self._fail(path, "must be a mapping")
		time_in_clip = self._parse_range(raw_row.get('timeInClip'),
			f"{path}.timeInClip")
		action = raw_row.get('action') or ''
		video_asset = None
		if raw_row.get('videoAsset') is not None:
			video_asset = self._parse_asset(raw_row['videoAsset'],
				f"{path}.videoAsset")
		audio_asset = None
		if raw_row.get('audioAsset') is not None:
			audio_asset = self._parse_asset(raw_row['audioAsset'],
				f"{path}.audioAsset")
		image_overlays = []
		for index, raw in enumerate(self._as_list(raw_row.get('imageOverlays'),
			f"{path}.imageOverlays")):
			image_overlays.append(
				self._parse_image_overlay(raw, f"{path}.imageOverlays[{index}]"))
		text_overlays = []
		for index, raw in enumerate(self._as_list(raw_row.get('textOverlays'),
			f"{path}.textOverlays")):
			text_overlays.append(
				self._parse_text_overlay(raw, f"{path}.textOverlays[{index}]"))
		return timeline.TimelineRow(time_in_clip, action=str(action),
			video_asset=video_asset, audio_asset=audio_asset,
			image_overlays=image_overlays, text_overlays=text_overlays)

	#============================
	def _parse_asset(self, raw, path: str) -> timeline.AssetRef:
		if not isinstance(raw, dict):
			self._fail(path, "must be a mapping")
		(asset_id, display_name) = self._parse_asset_id(raw)
		time_range = self._parse_range(raw.get('timeRange'), f"{path}.timeRange")
		volume = self._parse_unit_float(raw.get('volume'), 1.0, f"{path}.volume",
			allow_zero=True)
		return timeline.AssetRef(asset_id, display_name, time_range, volume=volume)

	#============================
	def _parse_image_overlay(self, raw, path: str) -> timeline.ImageOverlay:
		if not isinstance(raw, dict):
			self._fail(path, "must be a mapping")
		(asset_id, display_name) = self._parse_asset_id(raw)
		position = self._parse_position(raw.get('position'),
			timeline.IMAGE_POSITIONS, f"{path}.position")
		time_range = self._parse_range(raw.get('timeRange'), f"{path}.timeRange")
		scale = self._parse_unit_float(raw.get('scale'),
			timeline.DEFAULT_IMAGE_SCALE, f"{path}.scale", allow_zero=False)
		return timeline.ImageOverlay(asset_id, display_name, position, time_range,
			scale=scale)

	#============================
	def _parse_text_overlay(self, raw, path: str) -> timeline.TextOverlay:
		if not isinstance(raw, dict):
			self._fail(path, "must be a mapping")
		text = raw.get('text')
		if text is None:
			self._fail(f"{path}.text", "is required")
		position = self._parse_position(raw.get('position'),
			timeline.TEXT_POSITIONS, f"{path}.position")
		time_range = self._parse_range(raw.get('timeRange'), f"{path}.timeRange")
		font_size = raw.get('fontSize')
		if font_size is None:
			font_size = timeline.DEFAULT_FONT_SIZE
		if isinstance(font_size, bool) or not isinstance(font_size, (int, float)):
			self._fail(f"{path}.fontSize", "must be a number")
		if font_size <= 0:
			self._fail(f"{path}.fontSize", "must be positive")
		return timeline.TextOverlay(str(text), position, time_range,
			font_size=int(round(font_size)),
			font_color=raw.get('fontColor') or timeline.DEFAULT_FONT_COLOR,
			background_color=raw.get('backgroundColor')
				or timeline.DEFAULT_BACKGROUND_COLOR,
			font_weight=raw.get('fontWeight') or timeline.DEFAULT_FONT_WEIGHT)

	#============================
	def _parse_asset_id(self, raw: dict) -> tuple:
		asset_id = raw.get('assetId', raw.get('fileId'))
		display_name = raw.get('displayName', raw.get('fileName'))
		if asset_id is None:
			# the planner sometimes only knows the file name
			asset_id = display_name
		asset_id = '' if asset_id is None else str(asset_id)
		if display_name is None:
			display_name = asset_id
		return (asset_id, str(display_name))

	#============================
	def _parse_range(self, raw, path: str) -> timeline.TimeRange:
		if not isinstance(raw, dict):
			self._fail(path, "must be a mapping with start and end")
		try:
			start = utils.parse_timecode(raw.get('start'))
			end = utils.parse_timecode(raw.get('end'))
		except (RuntimeError, ArithmeticError, ValueError) as exc:
			self._fail(path, str(exc))
		if start < 0 or end < 0:
			self._fail(path, "start and end must be >= 0")
		if end <= start:
			self._fail(path, "end must be greater than start")
		return timeline.TimeRange(float(start), float(end))

	#============================
	def _parse_position(self, raw, allowed: tuple, path: str) -> str:
		if raw is None:
			return 'center'
		position = str(raw).strip().lower()
		if position not in allowed:
			self._fail(path, f"must be one of {', '.join(allowed)}")
		return position

	#============================
	def _parse_unit_float(self, raw, default: float, path: str,
		allow_zero: bool) -> float:
		if raw is None:
			return default
		if isinstance(raw, bool) or not isinstance(raw, (int, float)):
			self._fail(path, "must be a number")
		value = float(raw)
		low_ok = value >= 0.0 if allow_zero else value > 0.0
		if not low_ok or value > 1.0:
			interval = "[0, 1]" if allow_zero else "(0, 1]"
			self._fail(path, f"must be in {interval}")
		return value

	#============================
	def _as_list(self, raw, path: str) -> list:
		if raw is None:
			return []
		if not isinstance(raw, list):
			self._fail(path, "must be a list")
		return raw

	#============================
	def _fail(self, path: str, reason: str) -> None:
		raise ValidationError(f"{path} {reason}", stage='load')

#============================================

def load_timeline(source) -> timeline.Composition:
	return TimelineLoader(source).load()
