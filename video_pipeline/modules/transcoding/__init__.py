"""Transcoding module for multi-format video encoding.

Implements FFmpeg-based conversion fanned out per target format, with an
all-or-nothing join before outputs reach the blob store.
"""
