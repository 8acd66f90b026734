#!/usr/bin/env python3

"""
Timeline model handed to the composer. Plain data, no media behavior.
"""

#============================================

IMAGE_POSITIONS = ('top-left', 'top-right', 'bottom-left', 'bottom-right',
	'center', 'full-screen')
TEXT_POSITIONS = ('top-left', 'top-right', 'bottom-left', 'bottom-right',
	'center', 'top-center', 'bottom-center')

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 1920
DEFAULT_FPS = 30
DEFAULT_IMAGE_SCALE = 0.2
DEFAULT_FONT_SIZE = 48
DEFAULT_FONT_COLOR = 'white'
DEFAULT_BACKGROUND_COLOR = 'black'
DEFAULT_FONT_WEIGHT = 'bold'

#============================================

class TimeRange():
	def __init__(self, start: float, end: float):
		self.start = float(start)
		self.end = float(end)

	#============================
	@property
	def duration(self) -> float:
		return self.end - self.start

	#============================
	def contains(self, t: float) -> bool:
		return self.start <= t <= self.end

	#============================
	def to_dict(self) -> dict:
		return {'start': self.start, 'end': self.end}

	#============================
	def __eq__(self, other) -> bool:
		if not isinstance(other, TimeRange):
			return NotImplemented
		return (self.start, self.end) == (other.start, other.end)

	#============================
	def __repr__(self) -> str:
		return f"TimeRange({self.start:g}, {self.end:g})"

#============================================

class AssetRef():
	def __init__(self, asset_id: str, display_name: str, time_range: TimeRange,
		volume: float = 1.0):
		self.asset_id = asset_id
		self.display_name = display_name
		self.time_range = time_range
		self.volume = volume

	#============================
	def to_dict(self) -> dict:
		return {
			'assetId': self.asset_id,
			'displayName': self.display_name,
			'timeRange': self.time_range.to_dict(),
			'volume': self.volume,
		}

#============================================

class ImageOverlay():
	def __init__(self, asset_id: str, display_name: str, position: str,
		time_range: TimeRange, scale: float = DEFAULT_IMAGE_SCALE):
		self.asset_id = asset_id
		self.display_name = display_name
		self.position = position
		self.time_range = time_range
		self.scale = scale

	#============================
	def to_dict(self) -> dict:
		return {
			'assetId': self.asset_id,
			'displayName': self.display_name,
			'position': self.position,
			'timeRange': self.time_range.to_dict(),
			'scale': self.scale,
		}

#============================================

class TextOverlay():
	def __init__(self, text: str, position: str, time_range: TimeRange,
		font_size: int = DEFAULT_FONT_SIZE, font_color: str = DEFAULT_FONT_COLOR,
		background_color: str = DEFAULT_BACKGROUND_COLOR,
		font_weight: str = DEFAULT_FONT_WEIGHT):
		self.text = text
		self.position = position
		self.time_range = time_range
		self.font_size = font_size
		self.font_color = font_color
		self.background_color = background_color
		self.font_weight = font_weight

	#============================
	def to_dict(self) -> dict:
		return {
			'text': self.text,
			'position': self.position,
			'timeRange': self.time_range.to_dict(),
			'fontSize': self.font_size,
			'fontColor': self.font_color,
			'backgroundColor': self.background_color,
			'fontWeight': self.font_weight,
		}

#============================================

class TimelineRow():
	def __init__(self, time_in_clip: TimeRange, action: str = '',
		video_asset: AssetRef = None, audio_asset: AssetRef = None,
		image_overlays: list = None, text_overlays: list = None):
		self.time_in_clip = time_in_clip
		self.action = action
		self.video_asset = video_asset
		self.audio_asset = audio_asset
		self.image_overlays = list(image_overlays or [])
		self.text_overlays = list(text_overlays or [])

	#============================
	def to_dict(self) -> dict:
		data = {
			'timeInClip': self.time_in_clip.to_dict(),
			'action': self.action,
			'imageOverlays': [overlay.to_dict() for overlay in self.image_overlays],
			'textOverlays': [overlay.to_dict() for overlay in self.text_overlays],
		}
		if self.video_asset is not None:
			data['videoAsset'] = self.video_asset.to_dict()
		if self.audio_asset is not None:
			data['audioAsset'] = self.audio_asset.to_dict()
		return data

#============================================

class Composition():
	def __init__(self, rows: list, output_name: str,
		target_width: int = DEFAULT_WIDTH, target_height: int = DEFAULT_HEIGHT,
		target_fps=DEFAULT_FPS):
		self.rows = list(rows)
		self.output_name = output_name
		self.target_width = target_width
		self.target_height = target_height
		self.target_fps = target_fps

	#============================
	def to_dict(self) -> dict:
		return {
			'rows': [row.to_dict() for row in self.rows],
			'outputName': self.output_name,
			'targetWidth': self.target_width,
			'targetHeight': self.target_height,
			'targetFps': self.target_fps,
		}
