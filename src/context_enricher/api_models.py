"""Structured response models and parsing of raw model output."""

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from context_enricher.constants import PROMPT_PREVIEW_MAX_LENGTH
from context_enricher.exceptions import InvalidResponseShapeError

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)

_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


class BatchEnhancementResponse(BaseModel):
    """Expected reply to a batch prompt: enhanced text per block key."""

    enhanced_blocks: dict[str, str]


def extract_json_text(raw: str) -> str:
    """
    Pull the JSON object out of a model reply.

    Handles bare JSON, JSON wrapped in a markdown code fence, and JSON
    surrounded by prose.
    """
    text = raw.strip()
    fenced = _CODE_FENCE_PATTERN.search(text)
    if fenced:
        text = fenced.group(1).strip()
    embedded = _JSON_OBJECT_PATTERN.search(text)
    if embedded:
        text = embedded.group(0)
    return text


def parse_structured_response(raw: str, response_model: type[ResponseModel]) -> ResponseModel:
    """
    Parse a raw model reply into ``response_model``.

    Args:
        raw: Raw text returned by the provider
        response_model: Pydantic model describing the expected shape

    Returns:
        The validated model instance

    Raises:
        InvalidResponseShapeError: If no JSON can be decoded or it does not match the model
    """
    preview = (raw or "")[:PROMPT_PREVIEW_MAX_LENGTH]
    if not raw or not raw.strip():
        raise InvalidResponseShapeError("Empty response", raw_response=preview)

    try:
        # strict=False tolerates raw control characters inside strings
        data = json.loads(extract_json_text(raw), strict=False)
    except json.JSONDecodeError as e:
        raise InvalidResponseShapeError(f"Response is not valid JSON: {e}", raw_response=preview) from e

    try:
        return response_model.model_validate(data)
    except ValidationError as e:
        raise InvalidResponseShapeError(
            f"Response does not match {response_model.__name__}: {e.error_count()} error(s)",
            raw_response=preview,
        ) from e
