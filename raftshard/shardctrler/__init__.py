"""Shard controller configurations, rebalancing rules and client."""