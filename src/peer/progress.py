"""Terminal progress bar for fetch sessions."""
from __future__ import annotations

from typing import Optional

from tqdm import tqdm


class TqdmProgress:
    """Observador ``(percent, message)`` que desenha uma barra com ``tqdm``."""

    def __init__(self, description: str = "download", bar: Optional[tqdm] = None) -> None:
        self.bar = bar if bar is not None else tqdm(total=100.0, desc=description, unit="%")
        self._last = 0.0

    def __call__(self, percent: float, message: str) -> None:
        percent = max(0.0, min(100.0, percent))
        if percent > self._last:
            self.bar.update(percent - self._last)
            self._last = percent
        self.bar.set_postfix_str(message, refresh=True)

    def close(self) -> None:
        self.bar.close()
