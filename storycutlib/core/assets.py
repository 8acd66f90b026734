#!/usr/bin/env python3

"""
Asset resolvers: look up source media bytes by identifier and publish results.
"""

import os
from storycutlib.core import utils
from storycutlib.core.errors import AssetNotFoundError

#============================================

class ResolvedAsset():
	def __init__(self, data: bytes, display_name: str):
		self.data = data
		self.display_name = display_name

#============================================

class AssetResolver():
	"""
	Interface the composer depends on. Subclasses implement both calls.
	"""
	#============================
	def resolve_asset(self, asset_id: str) -> ResolvedAsset:
		raise NotImplementedError

	#============================
	def publish_result(self, data: bytes, name: str, mime_type: str) -> str:
		raise NotImplementedError

#============================================

class MemoryAssetStore(AssetResolver):
	def __init__(self, assets: dict = None):
		self.assets = {}
		self.names = {}
		self.published = []
		self.publish_counter = 0
		for asset_id, value in (assets or {}).items():
			if isinstance(value, tuple):
				self.add(asset_id, value[0], value[1])
			else:
				self.add(asset_id, value)

	#============================
	def add(self, asset_id: str, data: bytes, display_name: str = None) -> None:
		if display_name is None:
			display_name = asset_id
		self.assets[asset_id] = data
		self.names[asset_id] = display_name

	#============================
	def resolve_asset(self, asset_id: str) -> ResolvedAsset:
		if asset_id in self.assets:
			return ResolvedAsset(self.assets[asset_id], self.names[asset_id])
		# planners sometimes pass the display name instead of the id
		for known_id, name in self.names.items():
			if name == asset_id:
				return ResolvedAsset(self.assets[known_id], name)
		raise AssetNotFoundError(asset_id)

	#============================
	def publish_result(self, data: bytes, name: str, mime_type: str) -> str:
		self.publish_counter += 1
		asset_id = f"generated_{self.publish_counter:04d}"
		self.add(asset_id, data, name)
		self.published.append({'asset_id': asset_id, 'name': name,
			'mime_type': mime_type, 'size': len(data)})
		return asset_id

#============================================

class DirectoryAssetStore(AssetResolver):
	"""
	Resolve asset ids as file names under a folder; publish into an output folder.
	"""
	def __init__(self, asset_dir: str, output_dir: str = None):
		if not os.path.isdir(asset_dir):
			raise RuntimeError(f"asset directory not found: {asset_dir}")
		self.asset_dir = asset_dir
		self.output_dir = output_dir if output_dir is not None else asset_dir

	#============================
	def _asset_path(self, asset_id: str) -> str:
		if asset_id is None or asset_id == '':
			return None
		root = os.path.realpath(self.asset_dir)
		path = os.path.realpath(os.path.join(root, asset_id))
		if os.path.commonpath([root, path]) != root:
			return None
		if os.path.isfile(path):
			return path
		# allow ids given without their extension
		stem_matches = sorted(name for name in os.listdir(root)
			if os.path.splitext(name)[0] == asset_id)
		if len(stem_matches) > 0:
			return os.path.join(root, stem_matches[0])
		return None

	#============================
	def resolve_asset(self, asset_id: str) -> ResolvedAsset:
		path = self._asset_path(asset_id)
		if path is None:
			raise AssetNotFoundError(asset_id)
		with open(path, 'rb') as handle:
			data = handle.read()
		return ResolvedAsset(data, os.path.basename(path))

	#============================
	def publish_result(self, data: bytes, name: str, mime_type: str) -> str:
		if not os.path.isdir(self.output_dir):
			os.makedirs(self.output_dir)
		base_name = os.path.basename(name) or 'composition.mp4'
		if not os.path.splitext(base_name)[1]:
			base_name += '.mp4'
		asset_id = f"generated_{utils.make_timestamp()}-{base_name}"
		out_path = os.path.join(self.output_dir, asset_id)
		with open(out_path, 'wb') as handle:
			handle.write(data)
		utils.ensure_file_exists(out_path)
		return asset_id
