"""
Layer Studio - layer-based image transform editing engine.
"""

__version__ = "0.3.0"
