"""
Cinema box-office scheduling and seat reservation core
"""

__version__ = "1.0.0"
