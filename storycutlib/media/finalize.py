#!/usr/bin/env python3

import os
from storycutlib.media import ffmpeg
from storycutlib.media.buffer import MP4_MIME

#============================================

def finalize_output(buffer, output_name: str, settings, workspace,
	stage: str = 'publish'):
	"""
	Repackage the intermediate Matroska buffer as the delivery MP4.

	Video is stream-copied; the PCM intermediate audio is encoded with the
	configured delivery codec.
	"""
	source_file = workspace.materialize(buffer)
	out_file = workspace.make_path("output.mp4")
	try:
		args = ['-i', source_file, '-map', '0:v:0', '-map', '0:a:0?',
			'-c:v', 'copy',
			'-c:a', settings.audio_codec, '-b:a', str(settings.audio_bitrate),
			'-ar', str(settings.sample_rate), '-ac', str(settings.channels),
			'-movflags', '+faststart', '-f', 'mp4', out_file]
		ffmpeg.run_ffmpeg(args, stage)
		name = os.path.basename(output_name) or 'composition.mp4'
		result = workspace.read_buffer(out_file, name, mime_type=MP4_MIME)
		buffer.release()
		return result
	finally:
		workspace.cleanup([source_file, out_file])
