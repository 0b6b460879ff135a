"""Offline token estimation.

Approximates tokenizer output without an API round trip. The estimates
deliberately run high so assembled context never overflows its ceiling:

* prose: ~4 alphanumeric chars, ~6 whitespace chars or ~2 symbols per token
* code: a flat 3 chars per token
"""

from __future__ import annotations

import math
import re

_ALNUM_RE = re.compile(r"[a-zA-Z0-9]")
_WS_RE = re.compile(r"\s")


class TokenCounter:
    """Static token estimators."""

    @staticmethod
    def estimate(text: str) -> int:
        """Estimate tokens for prose text."""
        if not text:
            return 0
        alphanumeric = len(_ALNUM_RE.findall(text))
        whitespace = len(_WS_RE.findall(text))
        symbols = len(text) - alphanumeric - whitespace
        return (
            math.ceil(alphanumeric / 4)
            + math.ceil(whitespace / 6)
            + math.ceil(symbols / 2)
        )

    @staticmethod
    def estimate_code(code: str) -> int:
        """Estimate tokens for source code."""
        if not code:
            return 0
        return math.ceil(len(code) / 3)

    @staticmethod
    def count_lines(text: str) -> int:
        return text.count("\n") + 1
