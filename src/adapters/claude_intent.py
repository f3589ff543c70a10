"""
ClaudeIntentParser — uses Claude API to parse free-text travel requests.

The prompt file is the source of truth for the output shape.  The reply
is decoded here but validated by the classifier, never trusted as-is.
"""

import asyncio
import json
import os
from typing import Any

import anthropic

from src.domain.intent import ClassifierError, IntentParser
from src.prompts import load_prompt


class ClaudeIntentParser(IntentParser):
    """Intent parser backed by Claude claude-haiku-4-5-20251001 (fast + cheap)."""

    def __init__(self, api_key: str | None = None, model: str = "claude-haiku-4-5-20251001"):
        self._client = anthropic.Anthropic(api_key=api_key or os.environ["ANTHROPIC_API_KEY"])
        self._model = model
        self._system_prompt = load_prompt("intent")

    async def parse_intent(self, text: str) -> dict[str, Any]:
        try:
            response = await asyncio.to_thread(
                self._client.messages.create,
                model=self._model,
                max_tokens=300,
                system=self._system_prompt,
                messages=[{"role": "user", "content": text}],
            )
        except anthropic.APIError as exc:
            raise ClassifierError(f"Claude request failed: {exc}") from exc

        raw = response.content[0].text.strip()
        # Strip markdown code fences if the model wraps the JSON
        if raw.startswith("```"):
            raw = raw.split("```")[1]
            if raw.startswith("json"):
                raw = raw[4:]
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ClassifierError(f"Claude returned non-JSON output: {raw[:80]!r}") from exc
        if not isinstance(data, dict):
            raise ClassifierError("Claude returned a non-object JSON value")
        return data
