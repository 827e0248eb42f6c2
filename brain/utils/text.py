
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

# Highest priority first. Sentence and clause marks cover Latin and Arabic script;
# the empty separator means character-level splitting and always matches.
DEFAULT_SEPARATORS = [
    "\n\n",
    "\n",
    ". ",
    "؟ ",
    "? ",
    "! ",
    "، ",
    ", ",
    " ",
    "",
]

CHARS_PER_PAGE = 3000
ANCHOR_LENGTH = 50

_EXT_RE = re.compile(r"\.[^.]+$")
_TITLE_SEP_RE = re.compile(r"[-_]")


@dataclass
class TextChunk:
    content: str
    index: int
    start_char: int
    end_char: int
    estimated_page: int
    overlap_chars: int = 0

    @property
    def body(self) -> str:
        """Chunk text without the prefix borrowed from the previous chunk."""
        return self.content[self.overlap_chars:]

    @property
    def metadata(self) -> Dict[str, int]:
        return {
            "startChar": self.start_char,
            "endChar": self.end_char,
            "estimatedPage": self.estimated_page,
        }


def title_from_filename(file_name: str) -> str:
    return _TITLE_SEP_RE.sub(" ", _EXT_RE.sub("", file_name)).strip() or file_name


def _force_split(text: str, chunk_size: int) -> List[str]:
    return [text[i:i + chunk_size] for i in range(0, len(text), chunk_size)]


def _recursive_split(text: str, separators: Sequence[str], chunk_size: int) -> List[str]:
    if len(text) <= chunk_size:
        return [text]

    pos = next((i for i, s in enumerate(separators) if s == "" or s in text), None)
    if pos is None:
        return _force_split(text, chunk_size)
    sep = separators[pos]
    parts = list(text) if sep == "" else text.split(sep)

    chunks: List[str] = []
    buf = ""
    for part in parts:
        candidate = buf + sep + part if buf else part
        if len(candidate) <= chunk_size:
            buf = candidate
            continue
        if buf:
            chunks.append(buf)
        if len(part) > chunk_size:
            rest = separators[pos + 1:]
            if rest:
                chunks.extend(_recursive_split(part, rest, chunk_size))
            else:
                chunks.extend(_force_split(part, chunk_size))
            buf = ""
        else:
            buf = part
    if buf:
        chunks.append(buf)
    return chunks


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
    separators: Optional[Sequence[str]] = None,
) -> List[TextChunk]:
    """Split text into overlapping chunks along the most natural boundary available.

    Each chunk after the first starts with the last ``chunk_overlap`` characters
    of the previous chunk. Offsets are recovered by searching for a short anchor
    and are approximate on repetitive text.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be in [0, chunk_size)")
    if not text or not text.strip():
        return []

    seps = list(separators) if separators is not None else DEFAULT_SEPARATORS
    raw = [c.strip() for c in _recursive_split(text, seps, chunk_size)]
    raw = [c for c in raw if c]

    chunks: List[TextChunk] = []
    offset = 0
    for i, body in enumerate(raw):
        start = text.find(body[:ANCHOR_LENGTH], offset)
        if start < 0:
            start = offset
        end = start + len(body)
        offset = end

        prefix = raw[i - 1][-chunk_overlap:] if i > 0 and chunk_overlap else ""
        chunks.append(TextChunk(
            content=prefix + body,
            index=i,
            start_char=start,
            end_char=end,
            estimated_page=start // CHARS_PER_PAGE + 1,
            overlap_chars=len(prefix),
        ))
    return chunks
