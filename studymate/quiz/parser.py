"""Parse and validate provider quiz output."""
import json
import re
from typing import Any, List

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError
import structlog

from studymate.errors import ParseError
from studymate.quiz.schemas import ProviderQuestion

logger = structlog.get_logger()

_CODE_BLOCK = re.compile(r"```[\w-]*[ \t]*\n?(.*?)```", re.DOTALL)
_QUESTIONS = TypeAdapter(List[ProviderQuestion])


def _first_json_array(text: str) -> Any:
    """Decode the whole text as JSON, else the first decodable JSON array in it."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    start = text.find("[")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("[", start + 1)
            continue
        if isinstance(value, list):
            return value
        start = text.find("[", start + 1)

    raise ParseError("No JSON array found in provider output")


def _decode_reply(text: str) -> Any:
    """Decode the first fenced block that is JSON as a whole, else the reply."""
    for block in _CODE_BLOCK.finditer(text):
        content = block.group(1).strip()
        try:
            value = json.loads(content)
        except json.JSONDecodeError:
            logger.debug("code_block_not_json", preview=content[:40])
            continue
        if isinstance(value, (list, dict)):
            return value

    # Look outside the non-JSON blocks first so code samples are not mistaken for the array
    unfenced = _CODE_BLOCK.sub("\n", text).strip()
    if unfenced != text.strip():
        try:
            return _first_json_array(unfenced)
        except ParseError:
            pass

    return _first_json_array(text.strip())


def parse_questions(text: str) -> List[ProviderQuestion]:
    """Turn a provider reply into validated question objects.

    Args:
        text: Raw chat completion content

    Returns:
        Non-empty list of ProviderQuestion

    Raises:
        ParseError: If no array is present or it violates the question schema
    """
    if not text or not text.strip():
        raise ParseError("Empty provider output")

    value = _decode_reply(text)

    # Some models wrap the array in an object such as {"questions": [...]}
    if isinstance(value, dict):
        arrays = [v for v in value.values() if isinstance(v, list)]
        if len(arrays) != 1:
            raise ParseError("Provider output is an object without a single question array")
        value = arrays[0]

    if not isinstance(value, list):
        raise ParseError(f"Provider output is {type(value).__name__}, expected array")

    if not value:
        raise ParseError("Provider returned no questions")

    try:
        questions = _QUESTIONS.validate_python(value)
    except SchemaError as e:
        logger.warning(
            "provider_questions_invalid",
            error_count=e.error_count(),
            first_error=e.errors()[0]["msg"] if e.errors() else None,
        )
        raise ParseError("Provider questions failed schema validation", detail=str(e)) from e

    return questions
