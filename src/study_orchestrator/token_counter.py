"""Token estimates for providers that do not report usage."""

from __future__ import annotations

from loguru import logger


class TokenCounter:
    """Estimates prompt and completion token counts.

    Adapters prefer the usage block returned by the provider; this is only
    consulted when that block is missing. tiktoken is used when the
    encoding can be loaded, otherwise a character heuristic applies.
    """

    def __init__(self, encoding: str | None = "cl100k_base"):
        self._encoder = None
        if encoding is None:
            return
        try:
            import tiktoken

            self._encoder = tiktoken.get_encoding(encoding)
        except Exception:
            logger.debug(f"tiktoken encoding '{encoding}' unavailable, estimating")

    @property
    def exact(self) -> bool:
        return self._encoder is not None

    def count(self, text: str) -> int:
        if not text:
            return 0
        if self._encoder is not None:
            return len(self._encoder.encode(text))
        return self.estimate(text)

    def count_prompt(self, messages: list[dict]) -> int:
        """Chat prompt size including per-message framing overhead."""
        framing = 4 * len(messages) + 2
        return framing + sum(
            self.count(m["content"])
            for m in messages
            if isinstance(m.get("content"), str)
        )

    def usage(self, messages: list[dict], completion: str) -> tuple[int, int]:
        """Return ``(input_tokens, output_tokens)`` for one exchange."""
        return self.count_prompt(messages), self.count(completion)

    @staticmethod
    def estimate(text: str) -> int:
        """About four characters per token, two for CJK scripts."""
        wide = sum(
            1
            for c in text
            if "一" <= c <= "鿿"
            or "가" <= c <= "힯"
            or "぀" <= c <= "ヿ"
        )
        return max(1, (len(text) - wide) // 4 + wide // 2)


_default_counter: TokenCounter | None = None


def get_token_counter() -> TokenCounter:
    """Shared counter; loading the encoding is not free."""
    global _default_counter
    if _default_counter is None:
        _default_counter = TokenCounter()
    return _default_counter
