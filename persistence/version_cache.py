from __future__ import annotations


class VersionCache:
    """
    Last version this process observed for each document name.

    Owned by one client; two clients over the same folder keep separate caches.
    """

    def __init__(self) -> None:
        self._versions: dict[str, int] = {}

    def get(self, name: str) -> int:
        # 0 means "no baseline": the next write is unconditional
        return self._versions.get(name, 0)

    def set(self, name: str, version: int) -> None:
        if version > 0:
            self._versions[name] = int(version)
        else:
            self._versions.pop(name, None)

    def invalidate(self, name: str) -> None:
        self._versions.pop(name, None)

    def clear(self) -> None:
        self._versions.clear()

    def snapshot(self) -> dict[str, int]:
        return dict(self._versions)

    def __contains__(self, name: object) -> bool:
        return name in self._versions

    def __len__(self) -> int:
        return len(self._versions)
