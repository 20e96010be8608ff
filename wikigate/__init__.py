"""
wikigate - resilient, cached and instrumented access to Wikipedia mirrors.
"""

__version__ = "0.1.0"
