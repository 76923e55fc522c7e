"""Token-bounded, lossless splitting of file text."""

from __future__ import annotations

import codecs
import math
from typing import List, Protocol, Sequence

import tiktoken

from .models import TokenChunk


class Tokenizer(Protocol):
    def encode(self, text: str) -> List[int]: ...

    def decode(self, tokens: Sequence[int]) -> str: ...


class TiktokenTokenizer:
    """Adapter over a tiktoken encoding that treats special tokens as plain text."""

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        self.encoding_name = encoding_name
        self._encoding = None

    @property
    def encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def encode(self, text: str) -> List[int]:
        # Source files may legitimately contain strings such as "<|endoftext|>".
        return self.encoding.encode(text, disallowed_special=())

    def decode(self, tokens: Sequence[int]) -> str:
        return self.encoding.decode(list(tokens))

    def decode_bytes(self, tokens: Sequence[int]) -> bytes:
        return self.encoding.decode_bytes(list(tokens))


class TokenChunker:
    """Splits text into consecutive slices of at most ``max_tokens`` tokens.

    Boundaries are not aligned to lines or sentences. Byte-level BPE tokens can
    split a multi-byte character across two slices; when the tokenizer exposes
    ``decode_bytes`` the chunk texts are decoded incrementally, so such a
    character appears whole at the start of the later chunk and the joined
    texts equal the input. Tokenizers with only ``decode`` get each slice
    decoded on its own.
    """

    def __init__(self, tokenizer: Tokenizer | None = None, *, encoding_name: str = "cl100k_base") -> None:
        self.tokenizer: Tokenizer = tokenizer or TiktokenTokenizer(encoding_name)

    def count(self, text: str) -> int:
        return len(self.tokenizer.encode(text)) if text else 0

    def chunk(self, path: str, text: str, max_tokens: int) -> List[TokenChunk]:
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        tokens = self.tokenizer.encode(text) if text else []
        if not tokens:
            return []

        total = math.ceil(len(tokens) / max_tokens)
        slices = [tuple(tokens[index * max_tokens : (index + 1) * max_tokens]) for index in range(total)]
        return [
            TokenChunk(
                path=path,
                chunk_index=index,
                total_chunks=total,
                token_slice=token_slice,
                text=chunk_text,
            )
            for index, (token_slice, chunk_text) in enumerate(zip(slices, self._decode_slices(slices)))
        ]

    def _decode_slices(self, slices: Sequence[Sequence[int]]) -> List[str]:
        decode_bytes = getattr(self.tokenizer, "decode_bytes", None)
        if decode_bytes is None:
            return [self.tokenizer.decode(token_slice) for token_slice in slices]
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        last = len(slices) - 1
        return [
            decoder.decode(decode_bytes(token_slice), final=index == last)
            for index, token_slice in enumerate(slices)
        ]


__all__ = ["TiktokenTokenizer", "TokenChunker", "Tokenizer"]
