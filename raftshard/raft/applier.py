"""Ordered delivery of committed messages to the service."""

from __future__ import annotations

import collections
import threading
from typing import Any

from raftshard.raft.messages import ApplyMsg


class ApplyError(RuntimeError):
    """Raised when a message would break the order of delivery."""


class ApplyHelper:
    """Queue messages in index order and feed them to ``apply_queue``.

    A background thread moves queued messages to ``apply_queue`` (any object
    with a ``put`` method) so that callers never block on the service.
    """

    def __init__(self, apply_queue: Any, last_applied: int) -> None:
        self._out = apply_queue
        self.last_item_index = last_applied
        self._pending: collections.deque[ApplyMsg] = collections.deque()
        self._cond = threading.Condition()
        self._dead = False
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def kill(self) -> None:
        with self._cond:
            self._dead = True
            self._cond.notify_all()

    def killed(self) -> bool:
        return self._dead

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._pending and not self._dead:
                    self._cond.wait()
                if self._dead:
                    return
                msg = self._pending.popleft()
            self._out.put(msg)

    def try_apply(self, msg: ApplyMsg) -> bool:
        """Queue ``msg`` if it is next in order; ignore stale ones.

        Raises ApplyError for a command that skips an index or a message
        that is neither a command nor a snapshot.
        """
        with self._cond:
            if msg.command_valid:
                if msg.command_index <= self.last_item_index:
                    return True
                if msg.command_index == self.last_item_index + 1:
                    self._pending.append(msg)
                    self.last_item_index += 1
                    self._cond.notify_all()
                    return True
                raise ApplyError(
                    f"command index {msg.command_index} skips past {self.last_item_index}"
                )
            if msg.snapshot_valid:
                if msg.snapshot_index <= self.last_item_index:
                    return True
                self._pending.append(msg)
                self.last_item_index = msg.snapshot_index
                self._cond.notify_all()
                return True
            raise ApplyError("message is neither a command nor a snapshot")