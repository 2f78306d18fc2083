"""channelsync - multi-channel catalog and order reconciliation backend"""

__version__ = "0.4.0"
