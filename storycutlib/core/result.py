#!/usr/bin/env python3

#============================================

class ComposeResult():
	def __init__(self, success: bool, message: str, error: str = None,
		error_kind: str = None, stage: str = None, data: dict = None):
		self.success = success
		self.message = message
		self.error = error
		self.error_kind = error_kind
		self.stage = stage
		self.data = data

	#============================
	@classmethod
	def ok(cls, message: str, data: dict):
		return cls(True, message, data=data)

	#============================
	@classmethod
	def failure(cls, exc: Exception):
		kind = getattr(exc, 'kind', type(exc).__name__)
		stage = getattr(exc, 'stage', None)
		message = getattr(exc, 'message', None) or str(exc)
		return cls(False, "Failed to compose video", error=message,
			error_kind=kind, stage=stage)

	#============================
	def to_dict(self) -> dict:
		result = {
			'success': self.success,
			'message': self.message,
		}
		if self.error is not None:
			result['error'] = self.error
			result['errorKind'] = self.error_kind
			result['stage'] = self.stage
		if self.data is not None:
			result['data'] = dict(self.data)
		return result

	#============================
	def __repr__(self) -> str:
		if self.success:
			return f"ComposeResult(success, {self.data})"
		return f"ComposeResult(failed, {self.error_kind}: {self.error})"
