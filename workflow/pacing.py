"""Word-reveal pacing driven by elapsed wall-clock time."""

import asyncio
import math
import re
import time
from typing import Awaitable, Callable, Optional

# Leading whitespace, a word, and the whitespace that ends it
_WORD_UNIT_RE = re.compile(r"\s*\S+\s+")


class RevealPacer:
    """Releases streamed text at a steady words-per-second rate.

    The number of words that may be shown is ``floor(elapsed * rate)``, so a
    late wake-up releases every word that became due in one step. A word is
    only released once the whitespace after it has arrived; ``drain`` hands
    back whatever is left at the end of the stream.
    """

    def __init__(
        self,
        words_per_second: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.words_per_second = words_per_second
        self._clock = clock
        self._sleep = sleep
        self._started: Optional[float] = None
        self._pending = ""
        self._revealed = 0

    @property
    def enabled(self) -> bool:
        return self.words_per_second > 0

    @property
    def revealed(self) -> int:
        return self._revealed

    @property
    def backlog(self) -> int:
        """Complete words received but not yet released."""
        return len(self._units())

    def start(self) -> None:
        if self._started is None:
            self._started = self._clock()

    def _units(self) -> list[int]:
        ends = []
        position = 0
        for match in _WORD_UNIT_RE.finditer(self._pending):
            if match.start() != position:
                break
            position = match.end()
            ends.append(position)
        return ends

    def due(self) -> int:
        """Total words that may have been revealed by now."""
        if self._started is None:
            return 0
        return math.floor((self._clock() - self._started) * self.words_per_second)

    def push(self, text: str) -> str:
        """Accept a streamed delta and return the text that may be shown now."""
        if not self.enabled:
            return text
        self.start()
        self._pending += text
        return self.release()

    def release(self) -> str:
        allowed = self.due() - self._revealed
        if allowed <= 0:
            return ""
        ends = self._units()[:allowed]
        if not ends:
            return ""
        end = ends[-1]
        out, self._pending = self._pending[:end], self._pending[end:]
        self._revealed += len(ends)
        return out

    async def wait(self) -> None:
        """Sleep until the next word is due. Only a wake-up; call release() after."""
        if not self.enabled or self._started is None:
            return
        next_due = (self._revealed + 1) / self.words_per_second
        delay = next_due - (self._clock() - self._started)
        await self._sleep(max(0.0, delay))

    def drain(self) -> str:
        out, self._pending = self._pending, ""
        self._revealed += len(out.split())
        return out
