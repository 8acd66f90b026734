#!/usr/bin/env python3

"""
Tool-call entry point for a planning agent.

The agent sees COMPOSE_VIDEO_TOOL and answers with a tool name plus its
arguments; execute_tool_call routes that to a Composer.
"""

import json
from storycutlib.core import timeline
from storycutlib.core.composer import Composer
from storycutlib.core.result import ComposeResult

#============================================

def _time_range_schema(description: str = None) -> dict:
	schema = {
		'type': 'object',
		'properties': {
			'start': {'type': 'number', 'description': 'Start time in seconds'},
			'end': {'type': 'number', 'description': 'End time in seconds'},
		},
		'required': ['start', 'end'],
	}
	if description is not None:
		schema['description'] = description
	return schema

#============================================

def _asset_schema(description: str, with_volume: bool = False) -> dict:
	properties = {
		'fileId': {'type': 'string', 'description': 'Asset identifier'},
		'fileName': {'type': 'string', 'description': 'Original filename'},
		'timeRange': _time_range_schema('Range to take from the source asset'),
	}
	if with_volume:
		properties['volume'] = {'type': 'number',
			'description': 'Volume 0.0-1.0, default 1.0'}
	return {'type': 'object', 'description': description,
		'properties': properties, 'required': ['fileId', 'timeRange']}

#============================================

COMPOSE_VIDEO_TOOL = {
	'type': 'function',
	'function': {
		'name': 'composeVideo',
		'description': ("Compose a final short video from a timeline of video "
			"segments, audio tracks, image overlays, and text overlays."),
		'parameters': {
			'type': 'object',
			'properties': {
				'timeline': {
					'type': 'array',
					'description': 'Timeline rows, in playback order',
					'items': {
						'type': 'object',
						'properties': {
							'timeInClip': _time_range_schema(
								'Time range in the final clip'),
							'action': {'type': 'string',
								'description': 'What happens in this segment'},
							'videoAsset': _asset_schema('Source video for the segment'),
							'audioAsset': _asset_schema(
								'Replacement audio for the segment', with_volume=True),
							'imageOverlays': {
								'type': 'array',
								'items': {
									'type': 'object',
									'properties': {
										'fileId': {'type': 'string'},
										'fileName': {'type': 'string'},
										'position': {'type': 'string',
											'enum': list(timeline.IMAGE_POSITIONS)},
										'timeRange': _time_range_schema(),
										'scale': {'type': 'number',
											'description': 'Scale 0.0-1.0'},
									},
								},
							},
							'textOverlays': {
								'type': 'array',
								'items': {
									'type': 'object',
									'properties': {
										'text': {'type': 'string'},
										'position': {'type': 'string',
											'enum': list(timeline.TEXT_POSITIONS)},
										'timeRange': _time_range_schema(),
										'fontSize': {'type': 'number'},
										'fontColor': {'type': 'string'},
										'backgroundColor': {'type': 'string'},
									},
								},
							},
						},
						'required': ['timeInClip', 'action'],
					},
				},
				'outputFileName': {'type': 'string',
					'description': 'Name for the output video file'},
				'targetWidth': {'type': 'number'},
				'targetHeight': {'type': 'number'},
				'targetFps': {'type': 'number'},
			},
			'required': ['timeline'],
		},
	},
}

#============================================

def execute_tool_call(tool_name: str, arguments, resolver=None, composer=None,
	on_progress=None, cancel=None) -> ComposeResult:
	"""
	Run one agent tool call and return its ComposeResult.

	arguments may be the decoded mapping or the raw JSON text the agent sent.
	Pass either a ready Composer or a resolver to build one with default config.
	"""
	if tool_name != 'composeVideo':
		return ComposeResult(False, f"Unknown tool: {tool_name}",
			error=f"Tool '{tool_name}' is not implemented",
			error_kind='UnknownTool')
	if isinstance(arguments, (str, bytes)):
		try:
			arguments = json.loads(arguments)
		except ValueError as exc:
			return ComposeResult(False, f"Tool execution failed: {tool_name}",
				error=f"arguments are not valid JSON: {exc}",
				error_kind='ValidationError', stage='load')
	if composer is None:
		if resolver is None:
			raise ValueError("execute_tool_call needs a resolver or a composer")
		composer = Composer(resolver)
	return composer.compose(arguments, on_progress=on_progress, cancel=cancel)
