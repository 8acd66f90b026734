#!/usr/bin/env python3

import sys
import argparse
import yaml
from tqdm import tqdm
from storycutlib.core import utils
from storycutlib.core.assets import DirectoryAssetStore
from storycutlib.core.composer import Composer
from storycutlib.core.config import load_config
from storycutlib.core.errors import ComposeError
from storycutlib.core.loader import load_timeline
from storycutlib.core.validator import validate_timeline

#============================================

def parse_args(argv=None):
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="Timeline to short video composer")
	parser.add_argument('-t', '--timeline', dest='timeline_file', required=True,
		help='timeline json or yaml file describing the rows to render')
	parser.add_argument('-a', '--assets', dest='asset_dir', required=True,
		help='folder holding the source assets, looked up by id')
	parser.add_argument('-c', '--config', dest='config_file',
		help='engine config yaml (codecs, audio, fonts, policy)')
	parser.add_argument('-o', '--output-dir', dest='output_dir',
		help='folder for the published video, defaults to the asset folder')
	parser.add_argument('-n', '--dry-run', dest='dry_run', action='store_true',
		help='validate only, do not render')
	parser.add_argument('-q', '--quiet', dest='quiet', action='store_true',
		help='hide command echo and progress bar')
	parser.add_argument('-k', '--keep-temp', dest='keep_temp',
		help='keep temporary render files', action='store_true')
	parser.add_argument('-K', '--no-keep-temp', dest='keep_temp',
		help='remove temporary render files', action='store_false')
	parser.add_argument('--cache-dir', dest='cache_dir',
		help='directory for temporary render files')
	parser.add_argument('-p', '--dump-plan', dest='dump_plan', action='store_true',
		help='print the parsed timeline and exit')
	parser.set_defaults(keep_temp=None)
	args = parser.parse_args(argv)
	return args

#============================================

class ProgressBar():
	"""
	tqdm bar fed by compose progress events.
	"""
	def __init__(self):
		self.bar = tqdm(total=100, unit='%', bar_format='{l_bar}{bar}| {n:.0f}/{total:.0f}%')
		self.last_percent = 0.0

	#============================
	def __call__(self, event) -> None:
		self.bar.set_description(event.stage[:40])
		if event.percent > self.last_percent:
			self.bar.update(event.percent - self.last_percent)
			self.last_percent = event.percent

	#============================
	def close(self) -> None:
		self.bar.close()

#============================================

def main(argv=None) -> int:
	args = parse_args(argv)
	utils.set_quiet_mode(args.quiet)
	config = load_config(args.config_file, cache_dir=args.cache_dir,
		keep_temp=args.keep_temp)
	try:
		composition = load_timeline(args.timeline_file)
		if args.dump_plan:
			print(yaml.safe_dump(composition.to_dict(), sort_keys=False))
			return 0
		if args.dry_run:
			validate_timeline(composition, config.policy['missing_video'])
			print(f"timeline ok: {len(composition.rows)} rows, "
				f"{composition.rows[-1].time_in_clip.end:.2f}s")
			return 0
	except ComposeError as exc:
		print(f"ERROR: {exc}", file=sys.stderr)
		return 1
	store = DirectoryAssetStore(args.asset_dir, output_dir=args.output_dir)
	composer = Composer(store, config)
	progress_bar = None
	if not args.quiet:
		progress_bar = ProgressBar()
		composer.subscribe(progress_bar)
	try:
		result = composer.compose(composition)
	finally:
		if progress_bar is not None:
			progress_bar.close()
	if not result.success:
		print(f"ERROR: {result.message}: {result.error_kind}: {result.error}",
			file=sys.stderr)
		return 1
	data = result.data
	print(result.message)
	print(f"output: {data['outputId']} ({data['sizeBytes'] / 1024 / 1024:.2f}MB, "
		f"{data['durationSeconds']:.2f}s)")
	return 0


if __name__ == '__main__':
	sys.exit(main())
