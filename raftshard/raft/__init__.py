"""Raft building blocks: persistence, the log, messages, ordered apply, and election, replication and snapshot mixins."""