"""
Foundation Models Benchmark

A lightweight harness for timing streamed language-model generations, estimating
token counts from text, and reconciling the estimates against trace exports.
"""

__version__ = "0.3.0"
__author__ = "Foundation Models Benchmark Team"
