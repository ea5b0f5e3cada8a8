from __future__ import annotations
import asyncio
from dataclasses import dataclass
import logging
from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

@dataclass
class LLMClient:
    api_key: str
    model: str = "gemini-2.5-flash"
    timeout_s: float = 60.0

    def _client(self):
        return genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(self.timeout_s * 1000)),
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.7,
    ) -> str:
        # A hung request must only stall the calling task.
        logger.info(
            "llm_usage: complete model=%s temperature=%s system_len=%s prompt_len=%s",
            self.model,
            temperature,
            len(system_prompt),
            len(user_prompt),
        )
        client = self._client()
        resp = await asyncio.wait_for(
            client.aio.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=temperature,
                ),
            ),
            timeout=self.timeout_s,
        )
        return (resp.text or "").strip()
