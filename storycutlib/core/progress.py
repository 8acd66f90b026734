#!/usr/bin/env python3

"""
Progress stream for a compose job.

The composer is the only writer. Any number of consumers can subscribe,
either with a callback or with a bounded queue that a UI or logger drains
at its own pace.
"""

import queue
import time
from storycutlib.core.errors import CancelledError

#============================================

VALIDATION_BAND = (0.0, 5.0)
ROWS_BAND = (10.0, 70.0)
CONCAT_BAND = (70.0, 85.0)
PUBLISH_BAND = (85.0, 100.0)

# share of one row's budget spent on extraction
EXTRACT_SHARE = 0.6

#============================================

class ProgressEvent():
	def __init__(self, stage: str, percent: float, state: str = None):
		self.stage = stage
		self.percent = percent
		self.state = state
		self.timestamp = time.time()

	#============================
	def __repr__(self) -> str:
		return f"ProgressEvent({self.state}, {self.percent:.1f}%, {self.stage!r})"

#============================================

class ProgressChannel():
	def __init__(self):
		self._callbacks = []
		self._queues = []
		self.percent = 0.0
		self.state = None
		self.events_published = 0

	#============================
	def subscribe(self, callback):
		self._callbacks.append(callback)
		return callback

	#============================
	def unsubscribe(self, callback) -> None:
		if callback in self._callbacks:
			self._callbacks.remove(callback)

	#============================
	def subscribe_queue(self, maxsize: int = 256) -> queue.Queue:
		"""
		Return a queue that receives every event; the oldest event is dropped when full.
		"""
		event_queue = queue.Queue(maxsize=maxsize)
		self._queues.append(event_queue)
		return event_queue

	#============================
	def set_state(self, state: str) -> None:
		self.state = state

	#============================
	def publish(self, stage: str, percent: float) -> ProgressEvent:
		percent = min(100.0, max(float(percent), self.percent))
		self.percent = percent
		event = ProgressEvent(stage, percent, self.state)
		self.events_published += 1
		for callback in list(self._callbacks):
			callback(event)
		for event_queue in self._queues:
			self._offer(event_queue, event)
		return event

	#============================
	def close(self) -> None:
		for event_queue in self._queues:
			self._offer(event_queue, None)

	#============================
	def _offer(self, event_queue: queue.Queue, item) -> None:
		while True:
			try:
				event_queue.put_nowait(item)
				return
			except queue.Full:
				try:
					event_queue.get_nowait()
				except queue.Empty:
					pass

#============================================

class ProgressBand():
	"""
	Map a stage's own 0-100 progress onto a slice of the job's progress.
	"""
	def __init__(self, channel: ProgressChannel, low: float, high: float):
		self.channel = channel
		self.low = low
		self.high = high

	#============================
	def at(self, local_percent: float) -> float:
		local_percent = min(100.0, max(0.0, float(local_percent)))
		return self.low + (self.high - self.low) * local_percent / 100.0

	#============================
	def report(self, stage: str, local_percent: float) -> ProgressEvent:
		return self.channel.publish(stage, self.at(local_percent))

	#============================
	def sub_band(self, low_percent: float, high_percent: float):
		return ProgressBand(self.channel, self.at(low_percent), self.at(high_percent))

	#============================
	def split(self, count: int, index: int):
		"""
		Return the index-th of count equal sub-bands.
		"""
		width = 100.0 / count
		return self.sub_band(width * index, width * (index + 1))

#============================================

class CancelToken():
	def __init__(self):
		self.cancelled = False
		self.reason = None

	#============================
	def cancel(self, reason: str = "cancelled by caller") -> None:
		self.cancelled = True
		self.reason = reason

	#============================
	def check(self, stage: str = None) -> None:
		if self.cancelled:
			raise CancelledError(self.reason, stage=stage)
