"""vastkmm - VAST NFS kernel module lifecycle management for KMM clusters."""

__version__ = "0.1.0"
