"""
SnapBooth - Guided Photo Strip Booth

Frame selection, a timed four-shot capture sequence over a live camera feed,
per-pixel filters and a 1200x3600 strip compositor.
"""

__version__ = "1.0.0"
__author__ = "SnapBooth Team"
