"""
framescript: AviSynth / VapourSynth script generation for video files, with subtitle and
font extraction from Matroska containers and ordered-chapter chaining.
"""

__version__ = "0.1.0"
