"""
In-process MapReduce engine for the classic word count job.
"""

__version__ = "0.3.0"
