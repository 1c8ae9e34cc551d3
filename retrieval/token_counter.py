"""
Token counting for context budgets

tiktoken's cl100k_base is used as a conservative approximation for the
BPE tokenizers of local chat models: it tends to count slightly more tokens,
so a budget computed with it is rarely exceeded downstream.

Usage:
    from retrieval.token_counter import count_tokens, truncate_to_tokens

    n = count_tokens("[id] X-1\\n[title] Banner fix\\n")
    head = truncate_to_tokens(long_text, 200)
"""

import tiktoken

ENCODING_NAME = "cl100k_base"

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding(ENCODING_NAME)
    return _encoder


def count_tokens(text: str) -> int:
    """Number of tokens in text (0 for empty text)."""
    if not text:
        return 0
    return len(_get_encoder().encode(text))


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Return the longest prefix of text that fits in max_tokens."""
    if not text or max_tokens <= 0:
        return ""
    encoder = _get_encoder()
    tokens = encoder.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return encoder.decode(tokens[:max_tokens])
