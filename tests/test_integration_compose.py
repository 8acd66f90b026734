#!/usr/bin/env python3

"""
End-to-end compose tests against real ffmpeg renders of lavfi fixtures.
"""

# Standard Library
import os
import shutil
import subprocess
import sys

# PIP3 modules
import numpy
import PIL.Image
import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# local repo modules
from storycutlib.core import timeline
from storycutlib.core import utils
from storycutlib.core.assets import DirectoryAssetStore
from storycutlib.core.composer import Composer
from storycutlib.core.config import RenderSettings
from storycutlib.core.config import load_config
from storycutlib.core.errors import CancelledError
from storycutlib.core.errors import RangeError
from storycutlib.core.progress import CancelToken
from storycutlib.media import ffmpeg
from storycutlib.media import probe
from storycutlib.media.audio import AudioMixer
from storycutlib.media.buffer import Workspace
from storycutlib.media.concat import Concatenator
from storycutlib.media.extract import SegmentExtractor
from storycutlib.media.overlay import OverlayCompositor
from font_utils import fonts_config

#============================================

REQUIRED_TOOLS = ("ffmpeg", "ffprobe")
MISSING_TOOLS = [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]
HAVE_TOOLS = len(MISSING_TOOLS) == 0
SKIP_TOOLS_REASON = f"missing tools: {', '.join(MISSING_TOOLS)}"

pytestmark = pytest.mark.skipif(not HAVE_TOOLS, reason=SKIP_TOOLS_REASON)

WIDTH = 320
HEIGHT = 240
FPS = 25
ONE_FRAME = 1.0 / FPS

#============================================

def _run(args: list) -> None:
	"""
	Run an ffmpeg fixture command, raising on failure.
	"""
	subprocess.run(args, check=True,
		stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)

#============================================

def _make_color_clip(path: str, seconds: float, color: str = "blue",
	with_audio: bool = True) -> None:
	args = ['ffmpeg', '-y', '-hide_banner', '-loglevel', 'error',
		'-f', 'lavfi', '-i', f"color=c={color}:s={WIDTH}x{HEIGHT}:r={FPS}:d={seconds}"]
	if with_audio:
		args += ['-f', 'lavfi', '-i', f"sine=frequency=440:sample_rate=48000:duration={seconds}",
			'-c:a', 'aac', '-shortest']
	args += ['-c:v', 'libx264', '-pix_fmt', 'yuv420p', path]
	_run(args)

#============================================

def _make_tone(path: str, seconds: float, sample_rate: int = 44100,
	channels: int = 1) -> None:
	_run(['ffmpeg', '-y', '-hide_banner', '-loglevel', 'error',
		'-f', 'lavfi', '-i', f"sine=frequency=660:sample_rate={sample_rate}:duration={seconds}",
		'-ac', str(channels), '-c:a', 'pcm_s16le', path])

#============================================

def _grab_frame(path: str, seconds: float) -> numpy.ndarray:
	"""
	Decode one frame at a timestamp as an (h, w, 3) uint8 array.
	"""
	proc = subprocess.run(['ffmpeg', '-hide_banner', '-loglevel', 'error',
		'-i', path, '-ss', f"{seconds:.3f}", '-frames:v', '1',
		'-f', 'rawvideo', '-pix_fmt', 'rgb24', 'pipe:1'],
		check=True, stdout=subprocess.PIPE)
	frame = numpy.frombuffer(proc.stdout, dtype=numpy.uint8)
	return frame[:WIDTH * HEIGHT * 3].reshape(HEIGHT, WIDTH, 3)

#============================================

@pytest.fixture(scope="module")
def asset_dir(tmp_path_factory) -> str:
	folder = tmp_path_factory.mktemp("assets")
	_make_color_clip(str(folder / "clip_a.mp4"), 6)
	_make_color_clip(str(folder / "clip_b.mp4"), 6, with_audio=False)
	_make_color_clip(str(folder / "clip_red.mp4"), 6, color="red", with_audio=False)
	_make_tone(str(folder / "song.wav"), 8)
	_make_tone(str(folder / "stereo48.wav"), 3, sample_rate=48000, channels=2)
	PIL.Image.new("RGB", (100, 100), (0, 255, 0)).save(str(folder / "logo.png"))
	return str(folder)

#============================================

@pytest.fixture
def composer(asset_dir, tmp_path) -> Composer:
	utils.set_quiet_mode(True)
	config = load_config(cache_dir=str(tmp_path / "cache"))
	config.fonts = fonts_config()
	store = DirectoryAssetStore(asset_dir, output_dir=str(tmp_path / "out"))
	yield Composer(store, config)
	utils.set_quiet_mode(False)

#============================================

def _row(start: float, end: float, asset_id: str, source_start: float = 0.0,
	**extra) -> dict:
	row = {
		'timeInClip': {'start': start, 'end': end},
		'action': 'shot',
		'videoAsset': {'fileId': asset_id,
			'timeRange': {'start': source_start,
				'end': source_start + end - start}},
	}
	row.update(extra)
	return row

#============================================

def _timeline(rows: list) -> dict:
	return {'outputFileName': 'story.mp4', 'targetWidth': WIDTH,
		'targetHeight': HEIGHT, 'targetFps': FPS, 'timeline': rows}

#============================================

def _output_path(composer: Composer, result) -> str:
	return os.path.join(composer.resolver.output_dir, result.data['outputId'])

#============================================

def test_single_row(composer) -> None:
	result = composer.compose(_timeline([_row(0, 5, 'clip_a.mp4')]))
	assert result.success, result
	path = _output_path(composer, result)
	info = probe.probe_media(path)
	assert info.dimensions == (WIDTH, HEIGHT)
	assert info.video['codec_name'] == 'h264'
	assert info.audio['codec_name'] == 'aac'
	assert abs(info.duration - 5.0) < 0.1
	assert result.data['sizeBytes'] == os.path.getsize(path)

#============================================

def test_two_rows_with_text_window(composer) -> None:
	text = {'text': 'HELLO', 'position': 'center', 'fontSize': 40,
		'fontColor': 'red', 'backgroundColor': 'red',
		'timeRange': {'start': 0.5, 'end': 2.5}}
	rows = [_row(0, 5, 'clip_a.mp4'),
		_row(5, 10, 'clip_b.mp4', textOverlays=[text])]
	result = composer.compose(_timeline(rows))
	assert result.success, result
	assert result.data['segmentsProcessed'] == 2
	path = _output_path(composer, result)
	info = probe.probe_media(path)
	assert abs(info.duration - 10.0) < 0.15
	# silent source still gets an audio track
	assert info.has_audio
	shown = _grab_frame(path, 6.0)[HEIGHT // 2, WIDTH // 2]
	hidden = _grab_frame(path, 9.0)[HEIGHT // 2, WIDTH // 2]
	assert shown[0] > 100
	assert hidden[0] < 60
	assert hidden[2] > 180

#============================================

def test_image_overlay_window(composer) -> None:
	logo = {'fileId': 'logo.png', 'position': 'top-left', 'scale': 0.5,
		'timeRange': {'start': 2, 'end': 4}}
	result = composer.compose(_timeline(
		[_row(0, 6, 'clip_a.mp4', imageOverlays=[logo])]))
	assert result.success, result
	path = _output_path(composer, result)
	before = _grab_frame(path, 1.0)[45, 45]
	during = _grab_frame(path, 3.0)[45, 45]
	after = _grab_frame(path, 5.0)[45, 45]
	assert during[1] > 180 and during[2] < 80
	assert before[2] > 180 and before[1] < 80
	assert after[2] > 180 and after[1] < 80

#============================================

def test_audio_replacement_keeps_video_length(composer) -> None:
	audio = {'fileId': 'song.wav', 'timeRange': {'start': 0, 'end': 8},
		'volume': 0.5}
	result = composer.compose(_timeline(
		[_row(0, 4, 'clip_b.mp4', audioAsset=audio)]))
	assert result.success, result
	info = probe.probe_media(_output_path(composer, result))
	assert info.has_audio
	assert info.channels == 2
	assert abs(info.duration - 4.0) < 0.15

#============================================

def test_missing_audio_asset_publishes_nothing(composer) -> None:
	audio = {'fileId': 'nope.wav', 'timeRange': {'start': 0, 'end': 2}}
	result = composer.compose(_timeline(
		[_row(0, 2, 'clip_a.mp4', audioAsset=audio)]))
	assert not result.success
	assert result.error_kind == 'AssetNotFoundError'
	assert result.stage == 'audio'
	out_dir = composer.resolver.output_dir
	assert not os.path.isdir(out_dir) or os.listdir(out_dir) == []

#============================================

def test_extract_duration_within_one_frame(asset_dir, tmp_path) -> None:
	utils.set_quiet_mode(True)
	settings = RenderSettings(load_config(), WIDTH, HEIGHT, FPS)
	store = DirectoryAssetStore(asset_dir)
	with Workspace(cache_dir=str(tmp_path)) as workspace:
		extractor = SegmentExtractor(store, settings, workspace)
		percents = []
		buffer = extractor.extract('clip_a.mp4', timeline.TimeRange(1.0, 3.0),
			on_progress=percents.append)
		path = workspace.materialize(buffer, "check.mkv")
		info = probe.probe_media(path)
		assert abs(info.duration - 2.0) <= ONE_FRAME + 0.03
		assert info.dimensions == (WIDTH, HEIGHT)
		assert info.has_audio
		assert percents[-1] == 100.0
		frames = probe.count_video_frames(path)
		assert abs(frames - 2 * FPS) <= 1
		# end past the source is clamped, a start past it is not
		clamped = extractor.extract('clip_a.mp4', timeline.TimeRange(4.0, 9.0))
		clamped_path = workspace.materialize(clamped, "clamped.mkv")
		assert abs(probe.probe_media(clamped_path).duration - 2.0) < 0.15
		with pytest.raises(RangeError):
			extractor.extract('clip_a.mp4', timeline.TimeRange(7.0, 8.0))
	utils.set_quiet_mode(False)

#============================================

class CountdownToken(CancelToken):
	"""
	Cancels itself on the n-th check, so a loop is stopped mid-stream.
	"""
	def __init__(self, checks_before_cancel: int):
		super().__init__()
		self.remaining = checks_before_cancel

	def check(self, stage: str = None) -> None:
		self.remaining -= 1
		if self.remaining <= 0:
			self.cancel("stopped mid-stream")
		super().check(stage)

#============================================

@pytest.fixture
def stages(asset_dir, tmp_path):
	"""
	Store, render settings and scratch workspace for driving single stages.
	"""
	utils.set_quiet_mode(True)
	config = load_config()
	config.fonts = fonts_config()
	settings = RenderSettings(config, WIDTH, HEIGHT, FPS)
	store = DirectoryAssetStore(asset_dir)
	with Workspace(cache_dir=str(tmp_path / "scratch")) as workspace:
		yield (store, settings, workspace)
	utils.set_quiet_mode(False)

#============================================

def _extract(stages, asset_id: str, start: float, end: float):
	(store, settings, workspace) = stages
	extractor = SegmentExtractor(store, settings, workspace)
	return extractor.extract(asset_id, timeline.TimeRange(start, end))

#============================================

def _decode_buffer_audio(stages, buffer, name: str) -> numpy.ndarray:
	(store, settings, workspace) = stages
	path = workspace.materialize(buffer, name)
	samples = ffmpeg.decode_pcm(path, 48000, 2)
	workspace.cleanup([path])
	return samples

#============================================

def test_mixer_output_is_volume_times_source(stages, asset_dir) -> None:
	(store, settings, workspace) = stages
	video = _extract(stages, 'clip_red.mp4', 0, 2)
	mixer = AudioMixer(store, settings, workspace)
	mixed = mixer.replace_audio(video, 'stereo48.wav', timeline.TimeRange(0.5, 2.5),
		volume=0.5)
	assert video.consumed
	path = workspace.materialize(mixed, "mixed.mkv")
	assert probe.count_video_frames(path) == 2 * FPS
	output = ffmpeg.decode_pcm(path, 48000, 2)
	source = ffmpeg.decode_pcm(os.path.join(asset_dir, "stereo48.wav"), 48000, 2,
		start=0.5, duration=2.0)
	assert abs(output.shape[0] - 2 * 48000) <= 48000 // FPS
	count = min(output.shape[0], source.shape[0])
	assert numpy.abs(source[:count]).max() > 0.05
	assert numpy.allclose(output[:count], 0.5 * source[:count], atol=2e-3)

#============================================

def test_mixer_pads_short_audio_with_silence(stages) -> None:
	(store, settings, workspace) = stages
	video = _extract(stages, 'clip_red.mp4', 0, 4)
	mixer = AudioMixer(store, settings, workspace)
	# end past the 3s source is clamped, leaving one second of audio
	mixed = mixer.replace_audio(video, 'stereo48.wav', timeline.TimeRange(2.0, 9.0))
	path = workspace.materialize(mixed, "padded.mkv")
	assert abs(probe.probe_media(path).duration - 4.0) < 0.1
	samples = ffmpeg.decode_pcm(path, 48000, 2)
	assert abs(samples.shape[0] - 4 * 48000) <= 48000 // FPS
	assert numpy.abs(samples[:40000]).max() > 0.05
	assert numpy.abs(samples[-2 * 48000:]).max() < 1e-3

#============================================

def test_mixer_cuts_long_audio_to_video(stages) -> None:
	(store, settings, workspace) = stages
	video = _extract(stages, 'clip_red.mp4', 0, 1)
	mixer = AudioMixer(store, settings, workspace)
	mixed = mixer.replace_audio(video, 'stereo48.wav', timeline.TimeRange(0, 3))
	path = workspace.materialize(mixed, "cut.mkv")
	assert abs(probe.probe_media(path).duration - 1.0) < 0.1
	samples = ffmpeg.decode_pcm(path, 48000, 2)
	assert abs(samples.shape[0] - 48000) <= 48000 // FPS

#============================================

def test_mixer_start_past_source_is_range_error(stages) -> None:
	(store, settings, workspace) = stages
	video = _extract(stages, 'clip_red.mp4', 0, 1)
	mixer = AudioMixer(store, settings, workspace)
	with pytest.raises(RangeError) as excinfo:
		mixer.replace_audio(video, 'stereo48.wav', timeline.TimeRange(5, 6))
	assert excinfo.value.stage == 'audio'

#============================================

def test_concat_single_buffer_passes_through(stages) -> None:
	(store, settings, workspace) = stages
	segment = _extract(stages, 'clip_red.mp4', 0, 1)
	result = Concatenator(settings, workspace).concat([segment])
	assert result is segment
	assert not segment.consumed

#============================================

def test_concat_boundary_switches_to_second_segment(stages) -> None:
	(store, settings, workspace) = stages
	red = _extract(stages, 'clip_red.mp4', 0, 2)
	blue = _extract(stages, 'clip_b.mp4', 0, 2)
	joined = Concatenator(settings, workspace).concat([red, blue])
	assert red.consumed and blue.consumed
	path = workspace.materialize(joined, "joined.mkv")
	assert probe.count_video_frames(path) == 4 * FPS
	assert abs(probe.probe_media(path).duration - 4.0) < 0.1
	last_of_red = _grab_frame(path, 2.0 - ONE_FRAME)[HEIGHT // 2, WIDTH // 2]
	first_of_blue = _grab_frame(path, 2.0)[HEIGHT // 2, WIDTH // 2]
	assert last_of_red[0] > 180 and last_of_red[2] < 80
	assert first_of_blue[2] > 180 and first_of_blue[0] < 80

#============================================

def test_overlay_cancel_between_frames(stages) -> None:
	(store, settings, workspace) = stages
	segment = _extract(stages, 'clip_red.mp4', 0, 2)
	text = timeline.TextOverlay('stop', 'center', timeline.TimeRange(0, 2))
	compositor = OverlayCompositor(store, settings, workspace)
	token = CountdownToken(5)
	with pytest.raises(CancelledError) as excinfo:
		compositor.overlay_text(segment, text, cancel=token)
	assert excinfo.value.stage == 'overlay'
	assert not segment.consumed
	assert os.listdir(workspace.cache_dir) == []

#============================================

def test_concat_cancel_between_frames(stages) -> None:
	(store, settings, workspace) = stages
	first = _extract(stages, 'clip_red.mp4', 0, 2)
	second = _extract(stages, 'clip_b.mp4', 0, 2)
	# one check before the segment, then one per frame
	token = CountdownToken(10)
	with pytest.raises(CancelledError) as excinfo:
		Concatenator(settings, workspace).concat([first, second], cancel=token)
	assert excinfo.value.stage == 'concat'
	assert not second.consumed
	assert os.listdir(workspace.cache_dir) == []

#============================================

def test_compose_zero_rows_fails_validation(composer) -> None:
	result = composer.compose(_timeline([]))
	assert not result.success
	assert result.error_kind == 'ValidationError'
	assert result.stage == 'validate'
	assert result.to_dict()['success'] is False
