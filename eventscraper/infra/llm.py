"""
Gemini client returning schema-constrained structured output.
"""

from __future__ import annotations

import logging
from typing import Optional, Type

from google import genai
from google.genai import types

from ..interfaces import SchemaT, StructuredModel

logger = logging.getLogger(__name__)


class GeminiModel(StructuredModel):
    """Asks Gemini for JSON matching a pydantic schema and validates the reply."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.0,
        client: Optional[genai.Client] = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ValueError("GEMINI_API_KEY is not set")
            client = genai.Client(api_key=api_key)
        self._client = client
        self.model = model
        self.temperature = temperature

    async def generate(self, prompt: str, schema: Type[SchemaT]) -> SchemaT:
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                temperature=self.temperature,
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        parsed = getattr(response, "parsed", None)
        if isinstance(parsed, schema):
            return parsed
        # SDK could not coerce the reply itself; validate the raw JSON so
        # malformed output surfaces as a pydantic ValidationError
        text = response.text or ""
        logger.debug("Model %s returned unparsed output (%d chars)", self.model, len(text))
        return schema.model_validate_json(text)
