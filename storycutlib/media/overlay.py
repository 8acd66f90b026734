#!/usr/bin/env python3

"""
Overlay compositing: draw image and text overlays onto decoded frames.

Each frame is decoded onto a canvas of the target size, every overlay
whose time range contains the frame's local timestamp is painted in list
order (later overlays cover earlier ones), and the canvas is re-encoded
at the same timestamp. Audio is stream-copied.
"""

import io
import os
import PIL.Image
import PIL.ImageColor
import PIL.ImageDraw
import PIL.ImageFont
from storycutlib.core import utils
from storycutlib.core.errors import AssetNotFoundError
from storycutlib.core.errors import DecodeError
from storycutlib.core.errors import ValidationError
from storycutlib.media import ffmpeg
from storycutlib.media import probe

#============================================

PAD = 20
TEXT_PAD_X = 24
TEXT_PAD_Y = 16
TEXT_LINE_HEIGHT = 1.4
BACKGROUND_OPACITY = 0.6

#============================================

def anchor_position(position: str, canvas_w: int, canvas_h: int,
	box_w: int, box_h: int, pad: int = PAD) -> tuple:
	"""
	Top-left corner of a box placed at a named anchor on the canvas.
	"""
	if position == 'full-screen':
		return (0, 0)
	if position == 'top-left':
		return (pad, pad)
	if position == 'top-right':
		return (canvas_w - box_w - pad, pad)
	if position == 'bottom-left':
		return (pad, canvas_h - box_h - pad)
	if position == 'bottom-right':
		return (canvas_w - box_w - pad, canvas_h - box_h - pad)
	if position == 'top-center':
		return ((canvas_w - box_w) / 2.0, pad)
	if position == 'bottom-center':
		return ((canvas_w - box_w) / 2.0, canvas_h - box_h - pad)
	return ((canvas_w - box_w) / 2.0, (canvas_h - box_h) / 2.0)

#============================================

def parse_color(value) -> tuple:
	if value is None:
		return (255, 255, 255)
	if isinstance(value, (list, tuple)) and len(value) == 3:
		return tuple(int(channel) for channel in value)
	if isinstance(value, str):
		try:
			return PIL.ImageColor.getrgb(value)[:3]
		except ValueError:
			raise ValidationError(f"invalid color value: {value}", stage='overlay')
	raise ValidationError(f"invalid color value: {value!r}", stage='overlay')

#============================================

def load_font(font_size: int, font_weight: str = 'bold', fonts: dict = None):
	fonts = fonts or {}
	bold = str(font_weight).lower() in ('bold', 'bolder', '600', '700', '800', '900')
	font_file = fonts.get('bold') if bold else fonts.get('regular')
	if font_file is not None:
		if not os.path.exists(font_file):
			raise RuntimeError(f"font file not found: {font_file}")
		return PIL.ImageFont.truetype(font_file, font_size)
	candidates = ["DejaVuSans.ttf"]
	if bold:
		candidates.insert(0, "DejaVuSans-Bold.ttf")
	for candidate in candidates:
		try:
			return PIL.ImageFont.truetype(candidate, font_size)
		except OSError:
			continue
	try:
		return PIL.ImageFont.load_default(size=font_size)
	except TypeError:
		return PIL.ImageFont.load_default()

#============================================

def measure_text_width(font, text: str) -> int:
	if hasattr(font, "getlength"):
		return int(round(font.getlength(text)))
	bbox = font.getbbox(text)
	return bbox[2] - bbox[0]

#============================================

class ImagePainter():
	def __init__(self, overlay, image, canvas_size: tuple):
		self.overlay = overlay
		self.time_range = overlay.time_range
		(canvas_w, canvas_h) = canvas_size
		image = image.convert("RGBA")
		if overlay.position == 'full-screen':
			size = (canvas_w, canvas_h)
		else:
			size = (max(1, int(round(image.width * overlay.scale))),
				max(1, int(round(image.height * overlay.scale))))
		if size != image.size:
			image = image.resize(size, resample=PIL.Image.LANCZOS)
		self.image = image
		(x, y) = anchor_position(overlay.position, canvas_w, canvas_h,
			size[0], size[1])
		self.origin = (int(round(x)), int(round(y)))

	#============================
	def applies_at(self, t: float) -> bool:
		return self.time_range.contains(t)

	#============================
	def paint(self, frame) -> None:
		frame.paste(self.image, self.origin, self.image)

#============================================

class TextPainter():
	def __init__(self, overlay, canvas_size: tuple, fonts: dict = None):
		self.overlay = overlay
		self.time_range = overlay.time_range
		(canvas_w, canvas_h) = canvas_size
		font = load_font(overlay.font_size, overlay.font_weight, fonts)
		text_w = measure_text_width(font, overlay.text)
		text_h = int(round(overlay.font_size * TEXT_LINE_HEIGHT))
		box_w = text_w + TEXT_PAD_X
		box_h = text_h + TEXT_PAD_Y
		alpha = int(round(255 * BACKGROUND_OPACITY))
		background = parse_color(overlay.background_color) + (alpha,)
		foreground = parse_color(overlay.font_color) + (255,)
		patch = PIL.Image.new("RGBA", (box_w, box_h), background)
		draw = PIL.ImageDraw.Draw(patch)
		draw.text((TEXT_PAD_X // 2, TEXT_PAD_Y // 2), overlay.text, font=font,
			fill=foreground)
		self.patch = patch
		(x, y) = anchor_position(overlay.position, canvas_w, canvas_h, box_w, box_h)
		self.origin = (int(round(x)), int(round(y)))

	#============================
	def applies_at(self, t: float) -> bool:
		return self.time_range.contains(t)

	#============================
	def paint(self, frame) -> None:
		frame.paste(self.patch, self.origin, self.patch)

#============================================

class OverlayCompositor():
	stage = 'overlay'

	def __init__(self, resolver, settings, workspace):
		self.resolver = resolver
		self.settings = settings
		self.workspace = workspace

	#============================
	def overlay_image(self, buffer, overlay, on_progress=None, cancel=None):
		painters = [self.make_image_painter(overlay)]
		return self.composite(buffer, painters, on_progress, cancel)

	#============================
	def overlay_text(self, buffer, overlay, on_progress=None, cancel=None):
		painters = [self.make_text_painter(overlay)]
		return self.composite(buffer, painters, on_progress, cancel)

	#============================
	def apply_overlays(self, buffer, image_overlays: list, text_overlays: list,
		on_progress=None, cancel=None):
		"""
		Paint all of a row's overlays in one decode/encode pass.

		Image overlays go first, then text overlays, each in list order,
		matching the result of applying them one pass at a time.
		"""
		painters = [self.make_image_painter(overlay) for overlay in image_overlays]
		painters += [self.make_text_painter(overlay) for overlay in text_overlays]
		return self.composite(buffer, painters, on_progress, cancel)

	#============================
	def make_image_painter(self, overlay) -> ImagePainter:
		try:
			asset = self.resolver.resolve_asset(overlay.asset_id)
		except AssetNotFoundError as exc:
			exc.stage = exc.stage or self.stage
			raise
		try:
			image = PIL.Image.open(io.BytesIO(asset.data))
			image.load()
		except (OSError, PIL.Image.DecompressionBombError) as exc:
			raise DecodeError(f"cannot decode overlay image {asset.display_name}: {exc}",
				stage=self.stage) from exc
		return ImagePainter(overlay, image, self._canvas_size())

	#============================
	def make_text_painter(self, overlay) -> TextPainter:
		return TextPainter(overlay, self._canvas_size(), self.settings.fonts)

	#============================
	def composite(self, buffer, painters: list, on_progress=None, cancel=None):
		if len(painters) == 0:
			return buffer
		source_file = self.workspace.materialize(buffer)
		out_file = self.workspace.make_path("overlay.mkv")
		try:
			info = probe.probe_media(source_file, stage=self.stage)
			if not info.has_video:
				if not utils.is_quiet_mode():
					print("overlay: no video track, passing buffer through")
				return buffer
			expected = max(1, utils.frames_from_seconds(info.duration, self.settings.fps))
			audio_source = source_file if info.has_audio else None
			reader = ffmpeg.FrameReader(source_file, self.settings, stage=self.stage)
			try:
				writer = ffmpeg.FrameWriter(out_file, self.settings,
					audio_source=audio_source, stage=self.stage)
			except BaseException:
				reader.abort()
				raise
			try:
				self._paint_frames(reader, writer, painters, expected,
					on_progress, cancel)
				reader.close()
			except BaseException:
				reader.abort()
				writer.abort()
				raise
			writer.close()
			result = self.workspace.read_buffer(out_file, buffer.name)
			buffer.release()
			return result
		finally:
			self.workspace.cleanup([source_file, out_file])

	#============================
	def _paint_frames(self, reader, writer, painters: list, expected: int,
		on_progress, cancel) -> None:
		fps_float = self.settings.fps_float
		index = 0
		for array in reader:
			if cancel is not None:
				cancel.check(self.stage)
			t = index / fps_float
			active = [painter for painter in painters if painter.applies_at(t)]
			if len(active) == 0:
				writer.write_frame(array)
			else:
				frame = PIL.Image.fromarray(array)
				for painter in active:
					painter.paint(frame)
				writer.write_frame(frame)
			index += 1
			if on_progress is not None:
				on_progress(min(99.0, index * 100.0 / expected))
		if on_progress is not None:
			on_progress(100.0)

	#============================
	def _canvas_size(self) -> tuple:
		return (self.settings.width, self.settings.height)
