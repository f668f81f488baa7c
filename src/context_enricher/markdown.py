"""Markdown helpers for the command line: block splitting, joining and annotation removal."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from context_enricher.models import DocumentMetadata
from context_enricher.validation import strip_annotations

_FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)
_FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")
_HEADING_PATTERN = re.compile(r"^#{1,6}\s")
_LIST_PATTERN = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s")


@dataclass
class MarkdownDocument:
    """A markdown file split into frontmatter and blank-line separated blocks."""

    blocks: List[Dict[str, str]]
    frontmatter: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def document_metadata(self) -> DocumentMetadata:
        known = {"title", "url", "description"}
        return DocumentMetadata(
            title=self.metadata.get("title"),
            url=self.metadata.get("url") or self.metadata.get("source_url"),
            description=self.metadata.get("description"),
            extra={k: v for k, v in self.metadata.items() if k not in known and k != "source_url"},
        )


def _parse_frontmatter(raw: str) -> Dict[str, Any]:
    """Read flat ``key: value`` lines. Nested YAML is kept only as raw frontmatter."""
    metadata: Dict[str, Any] = {}
    for line in raw.splitlines():
        if ":" not in line or line.startswith((" ", "\t", "#")):
            continue
        key, value = line.split(":", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        if key.strip():
            metadata[key.strip()] = value
    return metadata


def classify_block(text: str) -> str:
    """Return a coarse block type: code, heading, list, blockquote or paragraph."""
    if _FENCE_PATTERN.match(text):
        return "code"
    if _HEADING_PATTERN.match(text):
        return "heading"
    if _LIST_PATTERN.match(text):
        return "list"
    if text.lstrip().startswith(">"):
        return "blockquote"
    return "paragraph"


def split_markdown_blocks(body: str) -> List[str]:
    """
    Split markdown into blocks on blank lines.

    Fenced code blocks are kept whole even when they contain blank lines.
    """
    blocks: List[str] = []
    current: List[str] = []
    fence: Optional[str] = None

    for line in body.splitlines():
        match = _FENCE_PATTERN.match(line)
        if fence is None and match:
            fence = match.group(1)
        elif fence is not None and line.strip().startswith(fence):
            fence = None
            current.append(line)
            continue

        if fence is None and not line.strip():
            if current:
                blocks.append("\n".join(current))
                current = []
            continue
        current.append(line)

    if current:
        blocks.append("\n".join(current))
    return blocks


def parse_markdown(text: str) -> MarkdownDocument:
    """Split a markdown document into frontmatter and typed blocks."""
    frontmatter = None
    metadata: Dict[str, Any] = {}
    body = text
    match = _FRONTMATTER_PATTERN.match(text)
    if match:
        frontmatter = match.group(1)
        metadata = _parse_frontmatter(frontmatter)
        body = text[match.end() :]

    blocks = [{"text": block, "type": classify_block(block)} for block in split_markdown_blocks(body)]
    return MarkdownDocument(blocks=blocks, frontmatter=frontmatter, metadata=metadata)


def render_markdown(texts: Sequence[str], frontmatter: Optional[str] = None) -> str:
    """Join blocks with blank lines, restoring frontmatter when present."""
    body = "\n\n".join(texts)
    if frontmatter is not None:
        return f"---\n{frontmatter}\n---\n\n{body}\n"
    return f"{body}\n"


def remove_annotations(text: str) -> str:
    """Remove ``[[...]]`` annotations from a markdown document, leaving code blocks untouched."""
    document = parse_markdown(text)
    texts = [
        block["text"] if block["type"] == "code" else strip_annotations(block["text"]) for block in document.blocks
    ]
    return render_markdown(texts, document.frontmatter)
