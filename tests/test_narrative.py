"""Tests for the Claude-backed narrative generator."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from life_connections.engine.models import (
    ConnectionSummary,
    Direction,
    DomainRef,
    Narrative,
    Strength,
)
from life_connections.errors import NarrativeError
from life_connections.narrative import NarrativeGenerator, _parse_json_response


@pytest.fixture
def summary():
    return ConnectionSummary(
        domain_a=DomainRef(type="activity", metric="badminton", display_name="Badminton"),
        domain_b=DomainRef(type="health", metric="sleep_hours", display_name="Sleep hours"),
        category="health-activity",
        coefficient=0.87,
        adjusted_p_value=0.0001,
        effect_size=0.87,
        sample_size=35,
        direction=Direction.POSITIVE,
        strength=Strength.STRONG,
        survives_confounder_control=True,
    )


def _response(text: str) -> MagicMock:
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    response.usage.input_tokens = 100
    response.usage.output_tokens = 50
    return response


NARRATIVE_JSON = json.dumps(
    {
        "title": "Badminton improves your sleep",
        "description": "You sleep about 2 hours longer on badminton days.",
        "explanation": "Across 35 days, badminton days came with longer sleep.",
        "recommendation": "Try scheduling badminton before busy days.",
    }
)


class TestParseJsonResponse:
    """Tests for parsing model output."""

    def test_plain_json(self):
        """Bare JSON parses."""
        assert _parse_json_response(NARRATIVE_JSON)["title"] == "Badminton improves your sleep"

    def test_fenced_json(self):
        """Markdown fences are stripped."""
        text = f"```json\n{NARRATIVE_JSON}\n```"
        assert _parse_json_response(text)["recommendation"].startswith("Try")

    def test_invalid_json(self):
        """Unparseable text is a narrative error."""
        with pytest.raises(NarrativeError):
            _parse_json_response("Sure! Here is your title.")

    def test_non_object(self):
        """A JSON list is not a narrative."""
        with pytest.raises(NarrativeError):
            _parse_json_response("[1, 2]")


class TestNarrativeGenerator:
    """Tests for NarrativeGenerator."""

    @pytest.fixture
    def generator(self):
        with patch("life_connections.narrative.AsyncAnthropic") as mock_client_cls:
            client = MagicMock()
            client.messages.create = AsyncMock()
            mock_client_cls.return_value = client
            yield NarrativeGenerator(api_key="test-key")

    @pytest.mark.asyncio
    async def test_generate(self, generator, summary):
        """A valid response becomes a Narrative."""
        generator.client.messages.create.return_value = _response(NARRATIVE_JSON)
        narrative = await generator.generate(summary)

        assert isinstance(narrative, Narrative)
        assert narrative.title == "Badminton improves your sleep"
        kwargs = generator.client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-sonnet-4-20250514"
        assert "Badminton" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_api_error(self, generator, summary):
        """API failures are wrapped in NarrativeError."""
        generator.client.messages.create.side_effect = RuntimeError("overloaded")
        with pytest.raises(NarrativeError):
            await generator.generate(summary)

    @pytest.mark.asyncio
    async def test_missing_fields(self, generator, summary):
        """Responses without required fields are rejected."""
        generator.client.messages.create.return_value = _response('{"title": "Only a title"}')
        with pytest.raises(NarrativeError):
            await generator.generate(summary)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_api(self, summary):
        """Cached narratives are returned without calling the API."""
        cache = MagicMock()
        cache.get_json = AsyncMock(return_value=json.loads(NARRATIVE_JSON))
        cache.set_json = AsyncMock()
        with patch("life_connections.narrative.AsyncAnthropic") as mock_client_cls:
            client = MagicMock()
            client.messages.create = AsyncMock()
            mock_client_cls.return_value = client
            generator = NarrativeGenerator(api_key="k", cache=cache)
            narrative = await generator.generate(summary)

        assert narrative.title == "Badminton improves your sleep"
        client.messages.create.assert_not_called()
        cache.set_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_cache_miss_stores_result(self, summary):
        """Fresh narratives are written to the cache."""
        cache = MagicMock()
        cache.get_json = AsyncMock(return_value=None)
        cache.set_json = AsyncMock()
        with patch("life_connections.narrative.AsyncAnthropic") as mock_client_cls:
            client = MagicMock()
            client.messages.create = AsyncMock(return_value=_response(NARRATIVE_JSON))
            mock_client_cls.return_value = client
            generator = NarrativeGenerator(api_key="k", cache=cache, cache_ttl=60)
            await generator.generate(summary)

        cache.set_json.assert_awaited_once()
        key, value = cache.set_json.call_args.args
        assert key.startswith("narrative:")
        assert value["title"] == "Badminton improves your sleep"
        assert cache.set_json.call_args.kwargs["expire"] == 60
