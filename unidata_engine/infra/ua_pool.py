"""Identity (User-Agent) pool used to vary request headers."""

from __future__ import annotations

import random
from pathlib import Path
from typing import Iterable


class UserAgentPool:
    """Return a random identity string from the configured pool."""

    def __init__(
        self,
        user_agents: Iterable[str] | None = None,
        file_path: Path | None = None,
        chooser=random.choice,
    ) -> None:
        self._choose = chooser
        self._uas: list[str] = []
        if user_agents:
            self._uas.extend(ua.strip() for ua in user_agents if ua.strip())
        if file_path and file_path.exists():
            lines = file_path.read_text(encoding="utf-8").splitlines()
            self._uas.extend(line.strip() for line in lines if line.strip())

    def __len__(self) -> int:
        return len(self._uas)

    def get(self) -> str | None:
        if not self._uas:
            return None
        return self._choose(self._uas)


__all__ = ["UserAgentPool"]
