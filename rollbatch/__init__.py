"""
rollbatch: batch extraction of voter records from scanned electoral rolls.
"""

__version__ = "0.1.0"
