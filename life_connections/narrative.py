"""Narrative text for connections using the Claude API."""

import json

import structlog
from anthropic import AsyncAnthropic
from pydantic import ValidationError

from life_connections.cache import Cache, make_cache_key
from life_connections.engine.models import ConnectionSummary, Narrative
from life_connections.errors import NarrativeError

logger = structlog.get_logger()

# ============================================================================
# Prompts
# ============================================================================

NARRATIVE_SYSTEM_PROMPT = """\
You are a personal insights assistant. You turn statistical findings about \
someone's own life data into short, friendly text.

## Rules
1. Write in the second person ("you", "your")
2. Be warm and encouraging, never clinical
3. Describe a correlation, never claim that one thing causes the other
4. Mention a caveat when the relationship does not survive confounder control
5. Use the concrete numbers from the with/without comparison when present
6. Do not invent data that is not in the summary

## Output
Return JSON with: title, description, explanation, recommendation"""

NARRATIVE_USER_PROMPT = """\
Write narrative text for this connection found in the user's data:

---
{summary}
---

Return ONLY valid JSON:
{{
  "title": "At most 8 words, e.g. \\"Badminton improves your sleep\\"",
  "description": "One sentence with the key number",
  "explanation": "2-3 sentences on what the data shows and its limits",
  "recommendation": "At most 15 words, actionable"
}}"""


def _parse_json_response(response_text: str) -> dict:
    """Parse JSON from LLM response, handling markdown code blocks."""
    text = response_text.strip()

    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise NarrativeError(f"Narrative response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise NarrativeError("Narrative response is not a JSON object")
    return data


class NarrativeGenerator:
    """Generate connection narratives with Claude, optionally cached in Redis."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 600,
        cache: Cache | None = None,
        cache_ttl: int | None = 7 * 24 * 3600,
    ):
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.cache = cache
        self.cache_ttl = cache_ttl

    def _cache_key(self, summary: ConnectionSummary) -> str:
        return make_cache_key(
            f"narrative:{self.model}", summary.model_dump(mode="json")
        )

    async def generate(self, summary: ConnectionSummary) -> Narrative:
        """
        Produce title, description, explanation and recommendation text.

        Args:
            summary: Statistical context for one connection

        Returns:
            Narrative for the connection

        Raises:
            NarrativeError: If the API call fails or returns unusable text
        """
        cache_key = self._cache_key(summary) if self.cache else None
        if self.cache and cache_key:
            cached = await self.cache.get_json(cache_key)
            if cached is not None:
                logger.debug("Narrative cache hit", key=cache_key)
                return Narrative(**cached)

        prompt = NARRATIVE_USER_PROMPT.format(
            summary=summary.model_dump_json(indent=2, exclude_none=True)
        )

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=NARRATIVE_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
            response_text = response.content[0].text
        except Exception as e:
            raise NarrativeError(f"Narrative request failed: {e}") from e

        data = _parse_json_response(response_text)
        try:
            narrative = Narrative(**data)
        except ValidationError as e:
            raise NarrativeError(f"Narrative response missing fields: {e}") from e

        logger.info(
            "Narrative generated",
            category=summary.category,
            tokens=response.usage.input_tokens + response.usage.output_tokens,
        )

        if self.cache and cache_key:
            await self.cache.set_json(cache_key, narrative.model_dump(), expire=self.cache_ttl)
        return narrative
