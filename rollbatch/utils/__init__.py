"""
Utility functions for the roll batch pipeline.

Submodules are imported directly (``from rollbatch.utils.file_utils import
discover_units``) so that OpenCV and boto3 only load where they are used.
"""
