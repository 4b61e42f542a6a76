"""
pagewatch: poll-based page change monitoring, visual diffing and offline site replication.
"""

__version__ = "0.1.0"
