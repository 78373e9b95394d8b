"""Progress reporting helpers for conversion runs."""

from collections.abc import Callable

ProgressCallback = Callable[[float], None]


class MonotonicProgress:
    """
    Clamp reported fractions to [0, 1] and never let them go backwards.

    Wraps an optional user callback; without one every update is a no-op.
    """

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback
        self._last = 0.0

    @property
    def value(self) -> float:
        return self._last

    def update(self, fraction: float) -> None:
        fraction = min(1.0, max(self._last, fraction))
        self._last = fraction
        if self._callback:
            self._callback(fraction)

    def __call__(self, fraction: float) -> None:
        self.update(fraction)


class PercentProgress:
    """
    Forward progress to ``on_percent`` only when the whole percent changes.

    Used by the CLI to avoid redrawing on every chunk.
    """

    def __init__(self, on_percent: Callable[[int], None]) -> None:
        self._on_percent = on_percent
        self._last_percent = -1

    def __call__(self, fraction: float) -> None:
        percent = int(fraction * 100)
        if percent != self._last_percent:
            self._last_percent = percent
            self._on_percent(percent)


class SilentProgress:
    """Progress callback that ignores every update."""

    def __call__(self, fraction: float) -> None:
        pass
