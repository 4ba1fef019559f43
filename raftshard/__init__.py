"""Building blocks of Raft consensus peers and a shard controller's configurations and client."""

__version__ = "0.1.0"