# cmdflow/bridge/windows.py
from __future__ import annotations

"""Window title suggestions for window-related node params. Best effort only."""

from typing import Protocol, runtime_checkable

from cmdflow.utils.logger import get_logger


log = get_logger(__name__)


@runtime_checkable
class WindowLookup(Protocol):
    def list_open_windows(self) -> list[str]: ...


class StaticWindowLookup:
    """Fixed list of titles, for previews and tests."""

    def __init__(self, titles: list[str] | None = None) -> None:
        self.titles = list(titles or [])

    def list_open_windows(self) -> list[str]:
        return list(self.titles)


def suggest_window_titles(lookup: WindowLookup | None, query: str = "", limit: int = 20) -> list[str]:
    """
    Distinct non-empty titles containing `query` (case-insensitive), in the
    order the lookup reports them. Any lookup failure yields [].
    """
    if lookup is None or limit <= 0:
        return []
    try:
        titles = lookup.list_open_windows()
    except Exception as e:  # lookup lives outside our control
        log.debug(f"window lookup failed: {e}")
        return []
    needle = query.strip().lower()
    out: list[str] = []
    for title in titles or []:
        if not isinstance(title, str):
            continue
        title = title.strip()
        if not title or title in out:
            continue
        if needle and needle not in title.lower():
            continue
        out.append(title)
        if len(out) >= limit:
            break
    return out
