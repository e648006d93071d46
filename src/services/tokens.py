"""Generation-counter cancellation tokens for cooperative staleness checks."""

from __future__ import annotations

from dataclasses import dataclass


class TokenSource:
    """Issues monotonically increasing tokens; only the latest one is current."""

    def __init__(self) -> None:
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def issue(self) -> "CancellationToken":
        self._generation += 1
        return CancellationToken(source=self, generation=self._generation)


@dataclass(frozen=True)
class CancellationToken:
    source: TokenSource
    generation: int

    def is_current(self) -> bool:
        return self.source.generation == self.generation

    @property
    def is_stale(self) -> bool:
        return not self.is_current()
