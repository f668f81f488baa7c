"""Prompt construction for context disambiguation."""

import json
from typing import Mapping

from context_enricher.models import DocumentMetadata

INSTRUCTIONS_TEMPLATE = """# CONTEXT DISAMBIGUATION SESSION

## Document Metadata
Title: {title}
URL: {url}
Description: {description}{extra}

## Instructions
You will receive batches of markdown blocks taken from the document context window below.
Make each block understandable on its own by inserting short clarifications in [[...]] delimiters
right after ambiguous references.

### Guidelines
1. **Document-only context**: only add information found in the document context window
2. **Pronouns**: "he" -> "he [[John Smith]]", "they" -> "they [[the organization]]"
3. **Vague references**: clarify "this", "that", "these" using surrounding paragraphs
4. **Time and place**: add dates or locations when they are clear from the context
5. **Roles and relationships**: clarify who people are when the context says so
6. **Acronyms**: expand acronyms using full forms found in the document
7. **No repetition**: do not add what the sentence already makes clear

### Preservation Rules
- Every original word must remain, unchanged and in the same order
- Only add [[...]] insertions; never rewrite, remove or reorder text
- Keep all markdown syntax exactly: headers, lists, emphasis, links, images
- Never put [[...]] inside URLs, link targets, image syntax or inline code
- If a block needs no clarification, return it unchanged"""

WINDOW_CONTEXT_TEMPLATE = """

## Document Context Window {number} of {total}
{text}"""

BATCH_PROMPT_TEMPLATE = """Enhance the following blocks. Each key maps to one block of markdown:

```json
{blocks}
```

Return ONLY a JSON object of the form {{"enhanced_blocks": {{"<key>": "<enhanced text>"}}}}
containing every key above exactly once."""


def build_instructions(metadata: DocumentMetadata) -> str:
    """Build the static instructions cached for the whole session."""
    extra = "".join(f"\n{str(name).title()}: {value}" for name, value in metadata.extra.items())
    return INSTRUCTIONS_TEMPLATE.format(
        title=metadata.title or "Unknown",
        url=metadata.url or "Unknown",
        description=metadata.description or "None",
        extra=extra,
    )


def build_window_context(window_text: str, number: int, total: int) -> str:
    """Build the per-window section appended to the static instructions."""
    return WINDOW_CONTEXT_TEMPLATE.format(number=number, total=total, text=window_text)


def build_batch_prompt(blocks: Mapping[str, str]) -> str:
    """Build the user prompt for one batch: only the batch's keyed blocks."""
    return BATCH_PROMPT_TEMPLATE.format(blocks=json.dumps(dict(blocks), indent=2, ensure_ascii=False))
