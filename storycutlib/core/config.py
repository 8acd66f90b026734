#!/usr/bin/env python3

import os
import yaml
from storycutlib.core import utils

#============================================

MISSING_VIDEO_POLICIES = ('skip', 'placeholder', 'reject')
VALID_PRESETS = ('ultrafast', 'superfast', 'veryfast', 'faster', 'fast',
	'medium', 'slow', 'slower', 'veryslow')

#============================================

class EngineConfig():
	def __init__(self):
		self.config_file = None
		self.output = {
			'video_codec': 'libx264',
			'crf': 23,
			'preset': 'veryfast',
			'pixel_format': 'yuv420p',
			'audio_codec': 'aac',
			'audio_bitrate': '128k',
		}
		self.audio = {
			'sample_rate': 48000,
			'channels': 2,
			'audio_mode': 'stereo',
		}
		self.fonts = {
			'regular': None,
			'bold': None,
		}
		self.policy = {
			'missing_video': 'skip',
			'fuse_overlays': True,
		}
		self.cache_dir = None
		self.keep_temp = False

#============================================

class ConfigLoader():
	def __init__(self, yaml_file: str = None, cache_dir: str = None,
		keep_temp: bool = None):
		self.yaml_file = yaml_file
		self.cache_dir = cache_dir
		self.keep_temp = keep_temp

	#============================
	def load(self) -> EngineConfig:
		config = EngineConfig()
		data = {}
		if self.yaml_file is not None:
			data = self._load_yaml()
			config.config_file = self.yaml_file
		config.output = self._parse_output(data.get('output', {}), config.output)
		config.audio = self._parse_audio(data.get('audio', {}), config.audio)
		config.fonts = self._parse_fonts(data.get('fonts', {}), config.fonts)
		config.policy = self._parse_policy(data.get('policy', {}), config.policy)
		config.cache_dir = data.get('cache_dir')
		config.keep_temp = bool(data.get('keep_temp', False))
		if self.cache_dir is not None:
			config.cache_dir = self.cache_dir
		if self.keep_temp is not None:
			config.keep_temp = self.keep_temp
		return config

	#============================
	def _load_yaml(self) -> dict:
		utils.ensure_file_exists(self.yaml_file)
		with open(self.yaml_file, 'r') as data_file:
			data = yaml.safe_load(data_file)
		if data is None:
			return {}
		if not isinstance(data, dict):
			raise RuntimeError("config yaml must be a mapping at the top level")
		return data

	#============================
	def _parse_output(self, output: dict, defaults: dict) -> dict:
		if not isinstance(output, dict):
			raise RuntimeError("output must be a mapping")
		parsed = dict(defaults)
		parsed.update(output)
		crf = parsed.get('crf')
		if isinstance(crf, bool) or not isinstance(crf, int) or not 0 <= crf <= 51:
			raise RuntimeError("output.crf must be an integer between 0 and 51")
		if parsed.get('preset') not in VALID_PRESETS:
			raise RuntimeError(f"output.preset must be one of {', '.join(VALID_PRESETS)}")
		return parsed

	#============================
	def _parse_audio(self, audio: dict, defaults: dict) -> dict:
		if not isinstance(audio, dict):
			raise RuntimeError("audio must be a mapping")
		sample_rate = int(audio.get('sample_rate', defaults['sample_rate']))
		if sample_rate <= 0:
			raise RuntimeError("audio.sample_rate must be positive")
		(channel_count, audio_mode) = utils.normalize_channels(
			audio.get('channels', defaults['audio_mode']))
		return {
			'sample_rate': sample_rate,
			'channels': channel_count,
			'audio_mode': audio_mode,
		}

	#============================
	def _parse_fonts(self, fonts: dict, defaults: dict) -> dict:
		if not isinstance(fonts, dict):
			raise RuntimeError("fonts must be a mapping")
		parsed = dict(defaults)
		for key in ('regular', 'bold'):
			font_file = fonts.get(key)
			if font_file is None:
				continue
			if not os.path.exists(font_file):
				raise RuntimeError(f"fonts.{key} file not found: {font_file}")
			parsed[key] = font_file
		return parsed

	#============================
	def _parse_policy(self, policy: dict, defaults: dict) -> dict:
		if not isinstance(policy, dict):
			raise RuntimeError("policy must be a mapping")
		missing_video = policy.get('missing_video', defaults['missing_video'])
		if missing_video not in MISSING_VIDEO_POLICIES:
			raise RuntimeError(
				f"policy.missing_video must be one of {', '.join(MISSING_VIDEO_POLICIES)}")
		fuse_overlays = policy.get('fuse_overlays', defaults['fuse_overlays'])
		return {
			'missing_video': missing_video,
			'fuse_overlays': bool(fuse_overlays),
		}

#============================================

def load_config(yaml_file: str = None, cache_dir: str = None,
	keep_temp: bool = None) -> EngineConfig:
	return ConfigLoader(yaml_file, cache_dir=cache_dir, keep_temp=keep_temp).load()

#============================================

class RenderSettings():
	"""
	Canvas and codec settings shared by every stage of one compose job.
	"""
	def __init__(self, config: EngineConfig, width: int, height: int, fps):
		self.width = int(width)
		self.height = int(height)
		self.fps = utils.parse_fps(fps)
		self.fps_float = float(self.fps)
		self.video_codec = config.output['video_codec']
		self.crf = config.output['crf']
		self.preset = config.output['preset']
		self.pixel_format = config.output['pixel_format']
		self.audio_codec = config.output['audio_codec']
		self.audio_bitrate = config.output['audio_bitrate']
		self.sample_rate = config.audio['sample_rate']
		self.channels = config.audio['channels']
		self.fonts = dict(config.fonts)

	#============================
	@classmethod
	def for_composition(cls, config: EngineConfig, composition):
		return cls(config, composition.target_width, composition.target_height,
			composition.target_fps)

	#============================
	@property
	def frame_size(self) -> int:
		return self.width * self.height * 3

	#============================
	@property
	def frame_interval(self) -> float:
		return 1.0 / self.fps_float
