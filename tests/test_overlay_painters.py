#!/usr/bin/env python3

"""
Pytest coverage for overlay placement and painting on still frames.
"""

# Standard Library
import os
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
from storycutlib.core.errors import ValidationError
from storycutlib.media import overlay
from storycutlib.media.audio import scale_samples
from storycutlib.media.audio import fit_sample_count
from font_utils import fonts_config

#============================================

CANVAS = (400, 300)

#============================================

@pytest.mark.parametrize("position,expected", [
	('top-left', (20, 20)),
	('top-right', (400 - 100 - 20, 20)),
	('bottom-left', (20, 300 - 50 - 20)),
	('bottom-right', (400 - 100 - 20, 300 - 50 - 20)),
	('top-center', (150, 20)),
	('bottom-center', (150, 300 - 50 - 20)),
	('center', (150, 125)),
	('full-screen', (0, 0)),
	('somewhere', (150, 125)),
])
def test_anchor_table(position: str, expected: tuple) -> None:
	assert overlay.anchor_position(position, 400, 300, 100, 50) == expected

#============================================

def test_parse_color() -> None:
	assert overlay.parse_color('white') == (255, 255, 255)
	assert overlay.parse_color('#ff0000') == (255, 0, 0)
	with pytest.raises(ValidationError):
		overlay.parse_color('not-a-color')

#============================================

def test_image_painter_scales_and_places() -> None:
	logo = PIL.Image.new("RGB", (100, 50), (255, 0, 0))
	ref = timeline.ImageOverlay('logo', 'logo.png', 'top-left',
		timeline.TimeRange(2, 4), scale=0.5)
	painter = overlay.ImagePainter(ref, logo, CANVAS)
	assert painter.image.size == (50, 25)
	assert painter.origin == (20, 20)
	assert not painter.applies_at(1.9)
	assert painter.applies_at(2.0)
	assert painter.applies_at(4.0)
	assert not painter.applies_at(4.1)
	frame = PIL.Image.new("RGB", CANVAS, (0, 0, 0))
	painter.paint(frame)
	assert frame.getpixel((30, 30)) == (255, 0, 0)
	assert frame.getpixel((10, 10)) == (0, 0, 0)
	assert frame.getpixel((75, 30)) == (0, 0, 0)

#============================================

def test_full_screen_image_covers_canvas() -> None:
	logo = PIL.Image.new("RGB", (10, 10), (0, 0, 255))
	ref = timeline.ImageOverlay('bg', 'bg.png', 'full-screen',
		timeline.TimeRange(0, 1), scale=0.2)
	painter = overlay.ImagePainter(ref, logo, CANVAS)
	frame = PIL.Image.new("RGB", CANVAS, (0, 0, 0))
	painter.paint(frame)
	pixels = numpy.asarray(frame)
	assert (pixels == numpy.array([0, 0, 255], dtype=numpy.uint8)).all()

#============================================

def test_text_painter_box_geometry() -> None:
	ref = timeline.TextOverlay('Hello', 'top-center', timeline.TimeRange(0, 3),
		font_size=20, font_color='white', background_color='black')
	painter = overlay.TextPainter(ref, CANVAS, fonts_config())
	(box_w, box_h) = painter.patch.size
	assert box_h == round(20 * 1.4) + 16
	assert box_w > 24
	assert painter.origin == (int(round((400 - box_w) / 2.0)), 20)
	# translucent background, opaque glyphs
	assert painter.patch.getpixel((2, 2))[3] == 153
	frame = PIL.Image.new("RGB", CANVAS, (200, 200, 200))
	painter.paint(frame)
	(x, y) = painter.origin
	shaded = frame.getpixel((x + 2, y + 2))
	assert shaded[0] < 200
	assert frame.getpixel((x - 5, y + 2)) == (200, 200, 200)

#============================================

def test_later_overlay_wins() -> None:
	frame = PIL.Image.new("RGB", CANVAS, (0, 0, 0))
	span = timeline.TimeRange(0, 1)
	red = overlay.ImagePainter(timeline.ImageOverlay('r', 'r', 'center', span, 1.0),
		PIL.Image.new("RGB", (40, 40), (255, 0, 0)), CANVAS)
	green = overlay.ImagePainter(timeline.ImageOverlay('g', 'g', 'center', span, 1.0),
		PIL.Image.new("RGB", (20, 20), (0, 255, 0)), CANVAS)
	for painter in (red, green):
		painter.paint(frame)
	assert frame.getpixel((200, 150)) == (0, 255, 0)
	assert frame.getpixel((182, 132)) == (255, 0, 0)

#============================================

def test_scale_samples() -> None:
	samples = numpy.array([[0.5, -0.5], [1.0, -1.0]], dtype=numpy.float32)
	assert numpy.allclose(scale_samples(samples, 0.5), samples * 0.5)
	assert numpy.allclose(scale_samples(samples, 0.0), 0.0)
	assert numpy.allclose(scale_samples(samples, 1.0), samples)
	assert scale_samples(samples, 1.0).dtype == numpy.float32

#============================================

def test_fit_sample_count() -> None:
	samples = numpy.ones((10, 2), dtype=numpy.float32)
	assert fit_sample_count(samples, 4).shape == (4, 2)
	padded = fit_sample_count(samples, 15)
	assert padded.shape == (15, 2)
	assert padded[10:].sum() == 0.0
	assert padded[:10].sum() == 20.0
