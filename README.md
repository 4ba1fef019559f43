# raftshard

Building blocks for Raft consensus peers, plus the configuration rules and
client of a shard controller. Plain Python, no third-party dependencies.

## What is inside

### `raftshard.raft`

- `persister.Persister`: a thread-safe store for a peer's serialized Raft
  state and its service snapshot. It has `save`, `save_raft_state`,
  `save_state_and_snapshot`, `read_raft_state`, `read_snapshot`, the size
  methods and `copy`.
- `raftlog.RaftLog` and `raftlog.Entry`: the log, addressed by absolute
  index from `first_index` to `last_index`. Entries before `first_index`
  have been folded into a snapshot. It has `entry`, `append`,
  `entries_from` and `is_empty`.
- `messages`: `Role` (follower, candidate, leader), `ApplyMsg` (a committed
  command or an installed snapshot), the RPC argument and reply dataclasses
  for vote requests, append entries and snapshot installation, and `Peer`.
  `Peer.call(method, args)` invokes `method` on a target object with
  deep-copied arguments. It returns a deep copy of the reply, or `None` when
  the endpoint is disabled or has no target.
- `applier.ApplyHelper`: queues `ApplyMsg`s in index order and moves them
  to an output queue (any object with `put`) on a background thread. Stale
  messages are ignored. A command that skips an index raises `ApplyError`.
- `election.ElectionMixin`, `replication.ReplicationMixin` and
  `snapshot.SnapshotMixin` hold the peer's behaviour:
  - election timers, `start_election`, `request_vote` and
    `handle_heartbeat`;
  - `handle_append_entries`, `start_append_entries` and
    `append_entries_to`, with the back-up rule that skips over a whole
    conflicting term at once, and majority commit;
  - `snapshot`, `request_install_snapshot` and `install_snapshot`.

  Each mixin's docstring lists the attributes and helper methods the host
  class must provide.

### `raftshard.shardctrler`

- `common.Config`: a numbered configuration of `NSHARDS` (10) shards. Each
  shard maps to a group id, and 0 means unassigned. Each group id maps to
  its server names. `common` also holds the `Err` and `OpType` enums and the
  join, leave, move and query argument and reply dataclasses.
- `rebalance.rebalance_join`, `rebalance.rebalance_leave` and
  `rebalance.move_shard`: pure functions that build the next configuration.
  Shards are spread as evenly as possible, lower group ids take the
  remainder, and as few shards as possible move. `move_shard` returns `None`
  for an unknown group.
- `rebalance.ConfigHistory`: every configuration so far. It has `latest`,
  `query`, `join`, `leave` and `move`. `query(-1)`, or a number not yet
  reached, returns the latest configuration.
- `client.Clerk`: stamps each request with its client id and a rising
  sequence number. It retries a request across its `Peer`s until a reply
  arrives with `wrong_leader` false. It has `query`, `join`, `leave` and
  `move`.

## Rebalancing

```python
from raftshard.shardctrler.rebalance import ConfigHistory

history = ConfigHistory()
history.join({1: ["x", "y", "z"]})
history.join({2: ["a", "b", "c"]})
print(history.latest().shards)    # [1, 1, 1, 1, 1, 2, 2, 2, 2, 2]

history.leave([1])
print(history.query(-1).shards)   # every shard now on group 2
print(history.query(1).groups)    # {1: ['x', 'y', 'z']}
```

## Driving a Clerk

A `Clerk` talks to whatever objects its `Peer`s point at. Those objects need
`join`, `leave`, `move` and `query` methods that take the argument
dataclasses and return the matching replies:

```python
from raftshard.raft.messages import Peer
from raftshard.shardctrler.client import Clerk
from raftshard.shardctrler.common import (
    Err, JoinReply, LeaveReply, MoveReply, QueryReply,
)
from raftshard.shardctrler.rebalance import ConfigHistory


class LocalController:
    def __init__(self):
        self.history = ConfigHistory()

    def join(self, args):
        self.history.join(args.servers)
        return JoinReply(err=Err.OK)

    def leave(self, args):
        self.history.leave(args.gids)
        return LeaveReply(err=Err.OK)

    def move(self, args):
        self.history.move(args.shard, args.gid)
        return MoveReply(err=Err.OK)

    def query(self, args):
        return QueryReply(err=Err.OK, config=self.history.query(args.num))


clerk = Clerk([Peer(LocalController())])
clerk.join({1: ["x", "y", "z"]})
clerk.move(0, 1)
print(clerk.query(-1).num)
```

## What this package does not do

- It has no assembled Raft peer class. The election, replication and
  snapshot mixins need a host class that supplies their state, the
  persistence method and a ticker loop.
- It has no replicated controller server. Nothing here puts controller
  operations through a Raft log or removes duplicate requests.
- It provides no network transport. `Peer` only forwards calls within the
  process.

## Tests

```
pip install -e ".[test]"
pytest
```