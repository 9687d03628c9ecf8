"""Transcoding module for HLS conversion.

Plans a resolution ladder without upscaling, encodes each rung to HLS with
ffmpeg, writes the master playlist, and uploads the output tree alongside a
thumbnail and a sprite sheet.
"""
