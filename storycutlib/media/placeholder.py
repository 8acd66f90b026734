#!/usr/bin/env python3

from storycutlib.core.errors import ValidationError
from storycutlib.media import ffmpeg

#============================================

def render_placeholder(duration: float, settings, workspace,
	color: str = 'black', stage: str = 'placeholder'):
	"""
	Solid-color canvas with a silent track, in the same layout as an extracted segment.
	"""
	if duration <= 0:
		raise ValidationError("placeholder duration must be positive", stage=stage)
	out_file = workspace.make_path("placeholder.mkv")
	layout = ffmpeg.channel_layout(settings.channels)
	fps = settings.fps
	args = ['-f', 'lavfi', '-t', f"{duration:.6f}", '-i',
		f"color=c={color}:s={settings.width}x{settings.height}"
		f":r={fps.numerator}/{fps.denominator}",
		'-f', 'lavfi', '-t', f"{duration:.6f}", '-i',
		f"anullsrc=r={settings.sample_rate}:cl={layout}",
		'-map', '0:v:0', '-map', '1:a:0']
	args += ffmpeg.video_codec_args(settings)
	args += ffmpeg.intermediate_audio_args(settings)
	args += ['-t', f"{duration:.6f}", '-f', 'matroska', out_file]
	try:
		ffmpeg.run_ffmpeg(args, stage)
		return workspace.read_buffer(out_file, "placeholder.mkv")
	finally:
		workspace.cleanup([out_file])
