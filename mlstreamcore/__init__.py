"""
mlstreamcore

Prequential (test-then-update) evaluation of multi-label and multi-target
stream models under partial supervision.
"""

__version__ = "0.1.0"
