"""Configurations and RPC message types of the shard controller."""

from __future__ import annotations

import copy as _copy
from dataclasses import dataclass, field
from enum import Enum

NSHARDS = 10


def _unassigned() -> list[int]:
    return [0] * NSHARDS


@dataclass
class Config:
    """A numbered assignment of shards to replica groups.

    ``shards[i]`` is the group id owning shard ``i`` (0 means unassigned);
    ``groups`` maps a group id to its server names.
    """

    num: int = 0
    shards: list[int] = field(default_factory=_unassigned)
    groups: dict[int, list[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.shards = list(self.shards)
        if len(self.shards) != NSHARDS:
            raise ValueError(f"a config holds exactly {NSHARDS} shards")

    def copy(self) -> Config:
        """Return a deep copy that shares nothing with this config."""
        return Config(
            num=self.num,
            shards=list(self.shards),
            groups={gid: list(servers) for gid, servers in self.groups.items()},
        )

    def __deepcopy__(self, memo: dict) -> Config:
        return self.copy()


class Err(str, Enum):
    OK = "OK"
    WRONG_LEADER = "ErrWrongLeader"
    DUPLICATE = "ErrDuplicate"
    KILLED = "ErrKilled"
    TIMEOUT = "ErrTimeout"


class OpType(str, Enum):
    JOIN = "JoinOp"
    QUERY = "QueryOp"
    LEAVE = "LeaveOp"
    MOVE = "MoveOp"


@dataclass
class JoinArgs:
    servers: dict[int, list[str]] = field(default_factory=dict)
    client_id: int = 0
    seq_id: int = 0


@dataclass
class JoinReply:
    wrong_leader: bool = False
    err: Err | None = None


@dataclass
class LeaveArgs:
    gids: list[int] = field(default_factory=list)
    client_id: int = 0
    seq_id: int = 0


@dataclass
class LeaveReply:
    wrong_leader: bool = False
    err: Err | None = None


@dataclass
class MoveArgs:
    shard: int = 0
    gid: int = 0
    client_id: int = 0
    seq_id: int = 0


@dataclass
class MoveReply:
    wrong_leader: bool = False
    err: Err | None = None


@dataclass
class QueryArgs:
    num: int = 0
    client_id: int = 0
    seq_id: int = 0


@dataclass
class QueryReply:
    wrong_leader: bool = False
    err: Err | None = None
    config: Config = field(default_factory=Config)

    def __post_init__(self) -> None:
        self.config = _copy.deepcopy(self.config)