#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Per-session mutual exclusion for checkout operations.

Every operation against a cart runs rehydrate -> mutate -> recompute -> commit
as one unit. `SessionLocks` serializes those units per cart handle while
leaving different carts fully independent.
"""

import asyncio
import contextlib
from typing import AsyncIterator, Dict


class _Entry:

  def __init__(self) -> None:
    self.lock = asyncio.Lock()
    self.users = 0


class SessionLocks:
  """Registry of asyncio locks keyed by cart handle.

  Entries are reference counted and removed once no task holds or waits for
  them, so the registry only grows with the number of carts in flight.
  """

  def __init__(self) -> None:
    self._entries: Dict[str, _Entry] = {}

  @contextlib.asynccontextmanager
  async def hold(self, key: str) -> AsyncIterator[None]:
    """Holds the lock for `key` for the duration of the context."""
    entry = self._entries.get(key)
    if entry is None:
      entry = _Entry()
      self._entries[key] = entry
    entry.users += 1
    try:
      async with entry.lock:
        yield
    finally:
      entry.users -= 1
      if entry.users == 0 and self._entries.get(key) is entry:
        del self._entries[key]

  def in_use(self, key: str) -> bool:
    return key in self._entries

  def __len__(self) -> int:
    return len(self._entries)
