"""Text chunking for ingested documents."""

from collections.abc import Iterable, Sequence

from .config import config
from .models import DocumentChunk, DocumentRecord

logger = config.get_logger(__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", " ", "")


class TextChunker:
    """Splits text into overlapping chunks at the best available boundary."""

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 200,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: Maximum number of characters in a chunk.
            overlap: Number of characters shared by consecutive chunks.
            separators: Boundary strings in decreasing priority. The empty
                string allows a cut at any character.

        Raises:
            ValueError: If the size/overlap combination cannot make progress.
        """
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        if overlap < 0 or overlap >= chunk_size:
            msg = f"overlap must be in [0, chunk_size), got {overlap}"
            raise ValueError(msg)

        self.chunk_size = chunk_size
        self.overlap = overlap
        self.separators = tuple(separators)
        if "" not in self.separators:
            self.separators += ("",)

    def _find_end(self, text: str, start: int) -> int:
        """Pick the end offset of the chunk that starts at ``start``.

        Returns:
            Exclusive end offset, at most ``start + chunk_size``.
        """
        limit = start + self.chunk_size
        # At least half a window, and past the overlap so the next start advances
        min_end = max(start + self.chunk_size // 2, start + self.overlap + 1)

        for separator in self.separators:
            if not separator:
                return limit
            idx = text.rfind(separator, start, limit)
            if idx == -1:
                continue
            end = idx + len(separator)
            if end >= min_end:
                return end

        return limit

    def split_spans(self, text: str) -> list[tuple[int, int]]:
        """Compute ``(start, end)`` offsets of each chunk.

        Returns:
            Chunk spans in document order.
        """
        if not text:
            return []

        spans: list[tuple[int, int]] = []
        start = 0
        while start + self.chunk_size < len(text):
            end = self._find_end(text, start)
            spans.append((start, end))
            start = end - self.overlap

        spans.append((start, len(text)))
        return spans

    def split_text(self, text: str) -> list[str]:
        """Split text into overlapping chunks.

        Returns:
            Chunk strings; each is an exact slice of ``text``.
        """
        return [text[start:end] for start, end in self.split_spans(text)]

    def chunk_records(self, records: Iterable[DocumentRecord]) -> list[DocumentChunk]:
        """Split every record and attach provenance metadata to the chunks.

        Returns:
            A flat list of DocumentChunk objects in record order.
        """
        chunks: list[DocumentChunk] = []
        chunk_id = 0

        for record in records:
            for start, end in self.split_spans(record.text):
                content = record.text[start:end]
                metadata = {
                    **record.metadata,
                    "chunk_id": chunk_id,
                    "start_char": start,
                    "end_char": end,
                    "length": len(content),
                }
                chunks.append(DocumentChunk(content=content, metadata=metadata))
                chunk_id += 1

        logger.info("Text split into %d chunks", len(chunks))
        return chunks
