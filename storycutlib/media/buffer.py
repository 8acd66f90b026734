#!/usr/bin/env python3

"""
In-memory media buffers and the scratch space ffmpeg reads them through.
"""

import os
import re
import shutil
import tempfile
from storycutlib.core import utils

#============================================

MATROSKA_MIME = 'video/x-matroska'
MP4_MIME = 'video/mp4'

#============================================

class BufferConsumedError(RuntimeError):
	pass

#============================================

class MediaBuffer():
	"""
	A fully encoded container held in memory.

	Buffers are move-only: a stage that consumes one calls take() or
	release(), after which any access raises BufferConsumedError.
	"""
	def __init__(self, data: bytes, name: str = 'buffer.mkv',
		mime_type: str = MATROSKA_MIME):
		if not isinstance(data, (bytes, bytearray)):
			raise TypeError("MediaBuffer data must be bytes")
		self._data = bytes(data)
		self.name = name
		self.mime_type = mime_type
		self.size = len(self._data)
		self.consumed = False

	#============================
	@property
	def data(self) -> bytes:
		if self.consumed:
			raise BufferConsumedError(f"buffer {self.name} was already consumed")
		return self._data

	#============================
	def take(self) -> bytes:
		data = self.data
		self.release()
		return data

	#============================
	def release(self) -> None:
		self._data = None
		self.consumed = True

	#============================
	def __len__(self) -> int:
		return self.size

	#============================
	def __copy__(self):
		raise TypeError("MediaBuffer is move-only; use take() to transfer it")

	#============================
	def __deepcopy__(self, memo):
		raise TypeError("MediaBuffer is move-only; use take() to transfer it")

	#============================
	def __repr__(self) -> str:
		state = 'consumed' if self.consumed else f"{self.size} bytes"
		return f"MediaBuffer({self.name!r}, {state})"

#============================================

class Workspace():
	"""
	Per-job scratch directory. Containers need seekable input, so stages
	spill buffers here for the duration of one ffmpeg call.
	"""
	def __init__(self, cache_dir: str = None, keep_temp: bool = False):
		self.keep_temp = keep_temp
		self.temp_counter = 0
		self.cache_dir_created = False
		if cache_dir is None:
			cache_dir = tempfile.mkdtemp(prefix="storycut-run-")
			self.cache_dir_created = True
		elif not os.path.exists(cache_dir):
			os.makedirs(cache_dir)
		self.cache_dir = cache_dir

	#============================
	def make_path(self, filename: str) -> str:
		self.temp_counter += 1
		safe_name = re.sub(r'[^A-Za-z0-9._-]+', '_', os.path.basename(filename))
		tag = f"{utils.make_timestamp()}-{self.temp_counter:04d}"
		return os.path.join(self.cache_dir, f"{tag}-{safe_name}")

	#============================
	def materialize(self, source, filename: str = None) -> str:
		"""
		Write a MediaBuffer or raw bytes to a scratch file and return its path.
		"""
		if isinstance(source, MediaBuffer):
			data = source.data
			filename = filename or source.name
		else:
			data = source
		path = self.make_path(filename or 'input.bin')
		with open(path, 'wb') as handle:
			handle.write(data)
		return path

	#============================
	def read_buffer(self, path: str, name: str,
		mime_type: str = MATROSKA_MIME) -> MediaBuffer:
		utils.ensure_file_exists(path)
		with open(path, 'rb') as handle:
			data = handle.read()
		self.cleanup([path])
		return MediaBuffer(data, name=name, mime_type=mime_type)

	#============================
	def cleanup(self, paths: list) -> None:
		if self.keep_temp:
			return
		for filepath in paths:
			if filepath and os.path.exists(filepath):
				os.remove(filepath)

	#============================
	def close(self) -> None:
		if not self.keep_temp and self.cache_dir_created:
			shutil.rmtree(self.cache_dir, ignore_errors=True)

	#============================
	def __enter__(self):
		return self

	#============================
	def __exit__(self, exc_type, exc_value, traceback) -> None:
		self.close()
