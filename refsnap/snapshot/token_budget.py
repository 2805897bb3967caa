"""Token budget: count tokens and cut snapshot text to fit a limit."""

from __future__ import annotations

from functools import lru_cache

import tiktoken

TRUNCATION_NOTICE = "[... truncated to fit token budget ...]"


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    # Loaded on first use; the BPE ranks may need fetching.
    return tiktoken.get_encoding("cl100k_base")


class TokenBudget:
    """Counts tokens in a string and truncates text to fit within a budget."""

    def count(self, text: str) -> int:
        return len(_encoding().encode(text))

    def truncate(self, text: str, max_tokens: int) -> tuple[str, bool]:
        """
        Truncate text to fit within max_tokens, cutting at a line boundary.
        Returns (truncated_text, was_truncated).
        """
        if self.count(text) <= max_tokens:
            return text, False

        enc = _encoding()
        truncated = enc.decode(enc.encode(text)[:max_tokens])
        # Never leave half a snapshot line behind
        if "\n" in truncated:
            truncated = truncated[: truncated.rfind("\n")]
        return truncated + "\n" + TRUNCATION_NOTICE, True

    def fits(self, text: str, max_tokens: int) -> bool:
        return self.count(text) <= max_tokens
