#!/usr/bin/env python3

from storycutlib.core.errors import ValidationError

#============================================

class TimelineValidator():
	def __init__(self, missing_video: str = 'skip'):
		self.missing_video = missing_video

	#============================
	def validate(self, composition):
		"""
		Reject malformed timelines before any media work; return the input unchanged.

		Compositions built in code skip the loader, so ranges are checked here too.
		"""
		if composition is None or len(composition.rows) == 0:
			raise ValidationError("timeline is empty", stage='validate')
		for index, row in enumerate(composition.rows):
			path = f"rows[{index}]"
			self._check_range(row.time_in_clip, f"{path}.timeInClip")
			if row.video_asset is not None:
				self._check_asset_id(row.video_asset.asset_id, f"{path}.videoAsset")
				self._check_range(row.video_asset.time_range,
					f"{path}.videoAsset.timeRange")
			elif self.missing_video == 'reject':
				raise ValidationError(f"{path} has no videoAsset", stage='validate')
			if row.audio_asset is not None:
				self._check_asset_id(row.audio_asset.asset_id, f"{path}.audioAsset")
				self._check_range(row.audio_asset.time_range,
					f"{path}.audioAsset.timeRange")
			for overlay_index, overlay in enumerate(row.image_overlays):
				overlay_path = f"{path}.imageOverlays[{overlay_index}]"
				self._check_asset_id(overlay.asset_id, overlay_path)
				self._check_range(overlay.time_range, f"{overlay_path}.timeRange")
			for overlay_index, overlay in enumerate(row.text_overlays):
				self._check_range(overlay.time_range,
					f"{path}.textOverlays[{overlay_index}].timeRange")
		return composition

	#============================
	def _check_asset_id(self, asset_id: str, path: str) -> None:
		if asset_id is None or str(asset_id).strip() == '':
			raise ValidationError(f"{path} is missing an asset identifier",
				stage='validate')

	#============================
	def _check_range(self, time_range, path: str) -> None:
		if time_range is None:
			raise ValidationError(f"{path} is required", stage='validate')
		if time_range.start < 0 or time_range.end < 0:
			raise ValidationError(f"{path} start and end must be >= 0",
				stage='validate')
		if time_range.end <= time_range.start:
			raise ValidationError(f"{path} end must be greater than start",
				stage='validate')

#============================================

def validate_timeline(composition, missing_video: str = 'skip'):
	return TimelineValidator(missing_video=missing_video).validate(composition)
