"""Abstract base class for signal generators.

A generator is built from one parameter set and fed one growing history
window per bar. The simulator calls generate() once per bar, in order,
with ``history[-1]`` being the current bar; nothing after it is visible.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from edgelab.market.types import Bar, SignalIntent

GeneratorFactory = Callable[[Mapping[str, Any]], "SignalGenerator"]


class SignalGenerator(ABC):
    """Pluggable source of directional trade intents.

    Subclasses may keep incremental state (e.g. indicator buffers), so a
    fresh instance must be created for every run via a GeneratorFactory.
    """

    @abstractmethod
    def generate(self, history: Sequence[Bar]) -> list[SignalIntent]:
        """Return zero or more intents for the latest bar in ``history``."""

    @property
    def required_history(self) -> int:
        """Number of bars needed before the generator can fire."""
        return 1
