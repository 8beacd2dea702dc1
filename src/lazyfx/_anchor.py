"""Data anchor — plain Python structures that hold definition-level state.

Every AsyncLoaderDefinition is a thin handle over an _id. The loader, its
options, the memoized value and the current in-flight future live here, so
the only cross-activation shared state sits in one place and is touched
only from the event loop thread.
"""

import itertools

# Definition configuration
loaders: dict[int, object] = {}  # def_id -> loader callable
options: dict[int, object] = {}  # def_id -> LoaderOptions

# Definition shared state
resolved: dict[int, object] = {}  # def_id -> memoized value (absent = not resolved)
in_flight: dict[int, object] = {}  # def_id -> shared asyncio.Future
loader_calls: dict[int, int] = {}

# IDs and activation generations share one counter, so a generation token
# is never reused.
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)
