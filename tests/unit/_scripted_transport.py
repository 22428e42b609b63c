from __future__ import annotations

import json
from collections import defaultdict
from typing import Any


class ScriptedTransport:
    """Transport double: replays queued responses per (method, endpoint).

    A queued value is returned as the body (dicts/lists are JSON-encoded) or
    raised if it is an exception. The last entry of a queue repeats.
    """

    def __init__(self) -> None:
        self._script: dict[tuple[str, str], list[Any]] = defaultdict(list)
        self.calls: list[tuple[str, str, str | None]] = []

    def on(self, method: str, endpoint: str, *responses: Any) -> ScriptedTransport:
        self._script[(method.upper(), endpoint)].extend(responses)
        return self

    def count(self, method: str, endpoint: str) -> int:
        return sum(1 for m, e, _ in self.calls if (m, e) == (method.upper(), endpoint))

    def send(self, endpoint: str, method: str, body: str | None = None) -> str:
        method = method.upper()
        self.calls.append((method, endpoint, body))
        queue = self._script.get((method, endpoint))
        if not queue:
            raise AssertionError(f"unexpected call: {method} {endpoint}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, (dict, list)):
            return json.dumps(item)
        return str(item)
