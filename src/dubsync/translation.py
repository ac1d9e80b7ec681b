"""
Translation that keeps each line within its original time slot.
"""

import json
import logging

from .models import Segment
from .stt import parse_json_payload

logger = logging.getLogger("dubsync")


class TranslationParseError(RuntimeError):
    """The translation model returned something that is not a list of lines."""


SYSTEM_PROMPT = (
    "You are a professional dubbing translator. Translations must be speakable "
    "within the time available for each line."
)


def build_prompt(segments: list[Segment], target_language: str) -> str:
    """Build the isochrony prompt for one batch of segments."""
    simple_input = [
        {
            "id": s.id,
            "text": s.text,
            "availableDurationSeconds": round(s.slot_duration, 2),
        }
        for s in segments
    ]
    return f"""Translate into {target_language} respecting isochrony: each translation must be
speakable within availableDurationSeconds at a natural pace.
Input: array of {len(segments)} objects.
Output: array of EXACTLY {len(segments)} objects.

CRITICAL RULES:
1. DO NOT MERGE LINES. Keep a 1-to-1 correspondence by id.
2. Return only JSON: [{{ "id": number, "text": "translation" }}]

Data: {json.dumps(simple_input, ensure_ascii=False)}"""


def apply_translations(segments: list[Segment], translations) -> list[Segment]:
    """
    Merge model output back into segments by id.
    If the model merged or split lines (count mismatch) the whole translation is
    discarded and the input returned unchanged.
    """
    if isinstance(translations, dict):
        translations = [translations]
    if not isinstance(translations, list):
        raise TranslationParseError(f"Expected a list of translations, got {type(translations).__name__}")

    if len(translations) != len(segments):
        logger.warning(
            f"Translation merged or split lines (in: {len(segments)}, out: {len(translations)}); "
            "keeping the original text"
        )
        return list(segments)

    by_id: dict[int, str] = {}
    for item in translations:
        if not isinstance(item, dict):
            raise TranslationParseError(f"Translation entry is not an object: {item!r}")
        try:
            by_id[int(item.get("id"))] = str(item.get("text", ""))
        except (TypeError, ValueError):
            logger.warning("Ignoring translation entry with bad id: %r", item)

    out = []
    for seg in segments:
        text = by_id.get(seg.id)
        out.append(seg.with_text(text) if text is not None else seg)
    return out


class IsochronyTranslator:
    """Translate segments with an OpenAI chat model, one request per run."""

    def __init__(self, client, target_language: str, model: str = "gpt-4o-mini") -> None:
        self.client = client
        self.target_language = target_language
        self.model = model

    async def translate(self, segments: list[Segment]) -> list[Segment]:
        if not segments:
            return segments
        if self.client is None:
            raise RuntimeError("OpenAI client is not initialized (missing OPENAI_API_KEY)")

        logger.info(f"Translating {len(segments)} segments to {self.target_language} using {self.model}...")
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(segments, self.target_language)},
            ],
            temperature=0.1,
        )
        content = response.choices[0].message.content or ""
        try:
            translations = parse_json_payload(content)
        except ValueError as e:
            logger.error("Malformed translation JSON: %s", content[:500])
            raise TranslationParseError("The translation model returned invalid JSON") from e
        return apply_translations(segments, translations)
