"""Client of the shard controller service."""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from raftshard.raft.messages import Peer
from raftshard.shardctrler.common import Config, JoinArgs, LeaveArgs, MoveArgs, QueryArgs

RETRY_INTERVAL = 0.1
"""Seconds to wait after every known server has failed a request."""


class Clerk:
    """Sends requests to the controller replicas until the leader accepts one.

    Each request carries this clerk's id and a fresh sequence number, so the
    service can recognise a request it has already carried out.
    """

    def __init__(self, servers: Sequence[Peer]) -> None:
        self.servers = list(servers)
        self.client_id = secrets.randbelow(1 << 62)
        self.seq_id = 0
        self._mu = threading.Lock()

    def _call(self, method: str, args: Any) -> Any:
        while True:
            for server in self.servers:
                reply = server.call(method, args)
                if reply is not None and not reply.wrong_leader:
                    return reply
            time.sleep(RETRY_INTERVAL)

    def _next_seq(self) -> int:
        self.seq_id += 1
        return self.seq_id

    def query(self, num: int) -> Config:
        """Fetch configuration ``num``, or the latest one for -1."""
        with self._mu:
            args = QueryArgs(num=num, client_id=self.client_id, seq_id=self._next_seq())
            return self._call("query", args).config

    def join(self, servers: Mapping[int, Sequence[str]]) -> None:
        """Add replica groups, each given by its id and server names."""
        with self._mu:
            args = JoinArgs(
                servers={gid: list(names) for gid, names in servers.items()},
                client_id=self.client_id,
                seq_id=self._next_seq(),
            )
            self._call("join", args)

    def leave(self, gids: Iterable[int]) -> None:
        """Remove the replica groups with the given ids."""
        with self._mu:
            args = LeaveArgs(
                gids=list(gids), client_id=self.client_id, seq_id=self._next_seq()
            )
            self._call("leave", args)

    def move(self, shard: int, gid: int) -> None:
        """Hand ``shard`` to the replica group ``gid``."""
        with self._mu:
            args = MoveArgs(
                shard=shard, gid=gid, client_id=self.client_id, seq_id=self._next_seq()
            )
            self._call("move", args)