"""
Failure variants raised inside the composition engine.

Every variant carries a ``kind`` (its class name, used as the tag in a
failed ComposeResult) and the ``stage`` that raised it.
"""

#============================================

class ComposeError(Exception):
	kind = 'ComposeError'

	def __init__(self, message: str, stage: str = None):
		super().__init__(message)
		self.message = message
		self.stage = stage

	#============================
	def __str__(self) -> str:
		if self.stage:
			return f"[{self.stage}] {self.message}"
		return self.message

#============================================

class ValidationError(ComposeError):
	kind = 'ValidationError'

#============================================

class AssetNotFoundError(ComposeError):
	kind = 'AssetNotFoundError'

	def __init__(self, asset_id: str, stage: str = None):
		super().__init__(f"asset not found: {asset_id}", stage=stage)
		self.asset_id = asset_id

#============================================

class RangeError(ComposeError):
	kind = 'RangeError'

#============================================

class NoValidSegmentsError(ComposeError):
	kind = 'NoValidSegmentsError'

#============================================

class EncodeError(ComposeError):
	kind = 'EncodeError'

#============================================

class DecodeError(ComposeError):
	kind = 'DecodeError'

#============================================

class CancelledError(ComposeError):
	kind = 'CancelledError'
