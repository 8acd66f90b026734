#!/usr/bin/env python3

import os
import shlex
import subprocess
import time
from decimal import Decimal
from fractions import Fraction

#============================================

_QUIET_MODE = False
_COMMAND_REPORTER = None
_COMMAND_INDEX = 0

#============================================

class CommandError(RuntimeError):
	def __init__(self, args: list, returncode: int, stderr: str):
		self.command = format_command(args)
		self.returncode = returncode
		self.stderr = stderr
		tail = stderr.strip()[-2000:]
		super().__init__(f"command failed ({returncode}): {self.command}\n{tail}")

#============================================

def set_quiet_mode(value: bool) -> None:
	global _QUIET_MODE
	_QUIET_MODE = bool(value)

#============================================

def is_quiet_mode() -> bool:
	return _QUIET_MODE

#============================================

def set_command_reporter(reporter) -> None:
	global _COMMAND_REPORTER
	_COMMAND_REPORTER = reporter

#============================================

def clear_command_reporter() -> None:
	global _COMMAND_REPORTER
	_COMMAND_REPORTER = None

#============================================

def format_command(args: list) -> str:
	return shlex.join([str(arg) for arg in args])

#============================================

def report_command_start(args: list) -> float:
	"""
	Echo a command and notify the reporter, returning the start time.
	"""
	global _COMMAND_INDEX
	_COMMAND_INDEX += 1
	showcmd = format_command(args)
	if not _QUIET_MODE:
		print(f"CMD: '{showcmd}'")
	if _COMMAND_REPORTER is not None:
		_COMMAND_REPORTER({'event': 'start', 'index': _COMMAND_INDEX,
			'command': showcmd})
	return time.time()

#============================================

def report_command_end(args: list, returncode: int, t0: float) -> None:
	if _COMMAND_REPORTER is not None:
		_COMMAND_REPORTER({'event': 'end', 'index': _COMMAND_INDEX,
			'command': format_command(args), 'returncode': returncode,
			'seconds': time.time() - t0})

#============================================

def runCmd(args: list, input_bytes: bytes = None) -> bytes:
	"""
	Run an external tool and return its stdout, raising CommandError on failure.
	"""
	t0 = report_command_start(args)
	proc = subprocess.run([str(arg) for arg in args], input=input_bytes,
		stdout=subprocess.PIPE, stderr=subprocess.PIPE)
	report_command_end(args, proc.returncode, t0)
	if proc.returncode != 0:
		raise CommandError(args, proc.returncode,
			proc.stderr.decode('utf-8', errors='replace'))
	return proc.stdout

#============================================

def parse_fps(raw_fps) -> Fraction:
	"""
	Frame rate as an exact Fraction; accepts 30, 29.97, "25" or "30000/1001".
	"""
	if raw_fps is None or isinstance(raw_fps, bool):
		raise RuntimeError(f"invalid fps value: {raw_fps!r}")
	if isinstance(raw_fps, (int, float)):
		return Fraction(str(raw_fps))
	if not isinstance(raw_fps, str):
		raise RuntimeError(f"invalid fps value: {raw_fps!r}")
	(numerator, _, denominator) = raw_fps.strip().partition('/')
	if denominator:
		return Fraction(int(numerator), int(denominator))
	return Fraction(numerator)

#============================================

def parse_timecode(raw_time) -> Decimal:
	"""
	Seconds from a number or a [[hh:]mm:]ss.fff string.
	"""
	if raw_time is None or isinstance(raw_time, bool):
		raise RuntimeError(f"invalid time value: {raw_time!r}")
	if isinstance(raw_time, (int, float)):
		return Decimal(str(raw_time))
	if not isinstance(raw_time, str):
		raise RuntimeError(f"invalid time value: {raw_time!r}")
	fields = raw_time.strip().split(':')
	if len(fields) > 3:
		raise RuntimeError(f"invalid timecode: {raw_time}")
	total = Decimal(0)
	for field in fields:
		total = total * 60 + Decimal(field)
	return total

#============================================

def round_half_up_fraction(value: Fraction) -> int:
	numerator = value.numerator
	denominator = value.denominator
	whole = numerator // denominator
	remainder = numerator - (whole * denominator)
	if remainder * 2 >= denominator:
		return whole + 1
	return whole

#============================================

def frames_from_seconds(seconds, fps: Fraction) -> int:
	seconds_fraction = Fraction(str(seconds))
	frame_fraction = seconds_fraction * fps
	return round_half_up_fraction(frame_fraction)

#============================================

def seconds_from_frames(frames: int, fps: Fraction) -> float:
	seconds_fraction = Fraction(frames, 1) / fps
	return float(seconds_fraction)

#============================================

def normalize_channels(raw_channels) -> tuple:
	if raw_channels is None:
		return (2, 'stereo')
	channels = str(raw_channels).lower()
	if channels in ('mono', '1'):
		return (1, 'mono')
	if channels in ('stereo', '2'):
		return (2, 'stereo')
	raise RuntimeError("audio.channels must be mono or stereo")

#============================================

def ensure_file_exists(filepath: str) -> None:
	if not os.path.exists(filepath):
		raise RuntimeError(f"file not found: {filepath}")
	return

#============================================

def make_timestamp() -> str:
	"""
	Compact date and time stamp such as 26oct19K05C for scratch and output names.
	"""
	now = time.localtime()
	letters = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
	return (time.strftime("%y%b%d", now).lower() + letters[now.tm_hour % 26]
		+ f"{now.tm_min:02d}" + letters[now.tm_sec % 26])
