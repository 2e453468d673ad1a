"""
Best-effort text generation for advisor narratives.
A call either succeeds, is skipped because no API key is configured, or fails;
callers always have a deterministic answer to fall back on.
"""
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from openai import OpenAI, OpenAIError

from app.core.config import Settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful personal finance assistant. You help users understand their spending habits and provide actionable financial advice.

Guidelines:
- Be friendly, encouraging, and concise
- Give specific, actionable advice
- Reference their actual spending data
- Keep responses under 150 words
- Suggest concrete next steps"""


class LLMStatus(str, Enum):
    SUCCESS = "success"
    FALLBACK = "fallback"
    FAILED = "failed"


@dataclass
class LLMOutcome:
    status: LLMStatus
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == LLMStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class LLMClient:
    def __init__(self, client: Any = None, model: str = "gpt-4o-mini", max_tokens: int = 300) -> None:
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        if not settings.OPENAI_API_KEY:
            logger.info("OPENAI_API_KEY not set, advisor will use rule-based output only")
            return cls(None, model=settings.OPENAI_MODEL)
        client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=0,
        )
        return cls(client, model=settings.OPENAI_MODEL)

    @property
    def configured(self) -> bool:
        return self._client is not None

    def complete(self, prompt: str, system: str = SYSTEM_PROMPT) -> LLMOutcome:
        if not self.configured:
            return LLMOutcome(LLMStatus.FALLBACK, error="Text generation is not configured")

        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.7,
                max_tokens=self._max_tokens,
            )
            text = (response.choices[0].message.content or "").strip()
        except (OpenAIError, IndexError, AttributeError) as e:
            logger.warning(f"Text generation failed, using rule-based output: {str(e)}")
            return LLMOutcome(LLMStatus.FAILED, error=str(e))

        if not text:
            return LLMOutcome(LLMStatus.FAILED, error="Empty response")
        return LLMOutcome(LLMStatus.SUCCESS, text=text)
