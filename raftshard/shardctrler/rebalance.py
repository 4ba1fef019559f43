"""Pure configuration changes of the shard controller and their history."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from raftshard.shardctrler.common import Config


def _targets(order: Sequence[int], total: int) -> dict[int, int]:
    """Shards each group should own; lower group ids take the remainder."""
    per_group, extra = divmod(total, len(order))
    return {gid: per_group + (1 if rank < extra else 0) for rank, gid in enumerate(order)}


def _reassign(
    shards: Sequence[int],
    groups: Mapping[int, Sequence[str]],
    removed: frozenset[int] = frozenset(),
) -> list[int]:
    """Spread shards evenly over ``groups``, moving as few as possible.

    A shard stays with its group while that group still needs shards;
    otherwise it goes to the lowest group id that still needs one.
    """
    order = sorted(groups)
    remaining = _targets(order, len(shards))
    result = []
    for gid in shards:
        if gid not in removed and remaining.get(gid, 0) > 0:
            remaining[gid] -= 1
        else:
            target = next((g for g in order if remaining[g] > 0), None)
            if target is not None:
                gid = target
                remaining[target] -= 1
        result.append(gid)
    return result


def rebalance_join(config: Config, new_groups: Mapping[int, Sequence[str]]) -> Config:
    """Return the configuration following ``config`` once ``new_groups`` join.

    Raises ValueError if the result would have no groups at all.
    """
    groups = {gid: list(servers) for gid, servers in config.groups.items()}
    groups.update({gid: list(servers) for gid, servers in new_groups.items()})
    if not groups:
        raise ValueError("cannot balance shards over zero groups")
    return Config(num=config.num + 1, shards=_reassign(config.shards, groups), groups=groups)


def rebalance_leave(config: Config, removed_gids: Iterable[int]) -> Config:
    """Return the configuration following ``config`` once ``removed_gids`` leave.

    When no group is left every shard goes back to group 0.
    """
    removed = frozenset(removed_gids)
    groups = {
        gid: list(servers) for gid, servers in config.groups.items() if gid not in removed
    }
    if not groups:
        return Config(num=config.num + 1, shards=[0] * len(config.shards), groups={})
    shards = _reassign(config.shards, groups, removed)
    return Config(num=config.num + 1, shards=shards, groups=groups)


def move_shard(config: Config, shard: int, gid: int) -> Config | None:
    """Return the configuration that hands ``shard`` to ``gid``.

    Returns None, and so makes no new configuration, if ``gid`` is not a
    group of ``config``. Raises IndexError for a shard that does not exist.
    """
    if not 0 <= shard < len(config.shards):
        raise IndexError(f"shard {shard} does not exist")
    if gid not in config.groups:
        return None
    new_config = config.copy()
    new_config.num = config.num + 1
    new_config.shards[shard] = gid
    return new_config


class ConfigHistory:
    """Every configuration so far, indexed by its number.

    Configuration 0 has no groups and every shard in group 0.
    """

    def __init__(self) -> None:
        self.configs: list[Config] = [Config()]

    def __len__(self) -> int:
        return len(self.configs)

    def latest(self) -> Config:
        return self.configs[-1].copy()

    def query(self, num: int) -> Config:
        """Return configuration ``num``; -1 or a number not yet reached gives the latest."""
        if num == -1 or num >= len(self.configs):
            return self.latest()
        if num < 0:
            raise IndexError(f"no configuration numbered {num}")
        return self.configs[num].copy()

    def join(self, groups: Mapping[int, Sequence[str]]) -> Config:
        new_config = rebalance_join(self.configs[-1], groups)
        self.configs.append(new_config)
        return new_config.copy()

    def leave(self, gids: Iterable[int]) -> Config:
        new_config = rebalance_leave(self.configs[-1], gids)
        self.configs.append(new_config)
        return new_config.copy()

    def move(self, shard: int, gid: int) -> Config | None:
        new_config = move_shard(self.configs[-1], shard, gid)
        if new_config is None:
            return None
        self.configs.append(new_config)
        return new_config.copy()