"""
Contract tests for any IntentParser implementation.

The contract defines the behavioral guarantees:
- The output is a mapping with a "type" key
- The output passes ParsedIntent validation
- A clear search request is parsed as search_tours with the destination
"""

from abc import ABC, abstractmethod

import pytest

from src.domain.intent import PARSED_INTENT, IntentParser, SearchToursIntent


class IntentParserContract(ABC):

    @abstractmethod
    def create_parser(self) -> IntentParser:
        ...

    @pytest.mark.asyncio
    async def test_output_has_type(self):
        parser = self.create_parser()
        raw = await parser.parse_intent("Хочу в Турцию на 7 ночей до 120к")
        assert isinstance(raw, dict)
        assert "type" in raw

    @pytest.mark.asyncio
    async def test_search_request_is_parsed(self):
        parser = self.create_parser()
        raw = await parser.parse_intent("Хочу в Турцию на 7 ночей до 120к")
        parsed = PARSED_INTENT.validate_python(raw)
        assert isinstance(parsed, SearchToursIntent)
        assert parsed.args.country_name == "Turkey"
        assert parsed.args.nights_min == 7

    @pytest.mark.asyncio
    async def test_unrelated_text_validates(self):
        parser = self.create_parser()
        raw = await parser.parse_intent("какая сегодня погода в офисе")
        parsed = PARSED_INTENT.validate_python(raw)
        assert parsed.type in ("unknown", "smalltalk", "meta")
