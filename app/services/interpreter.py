"""
Executor de interpretação de sonhos (LLM via API de mensagens da Anthropic).

A resposta do modelo precisa ser um JSON no formato de `Interpretation`;
em caso de saída inválida é feita uma nova tentativa com instrução reforçada.
"""
import json
import logging
import re
from typing import List
import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from app.config import settings
from app.exceptions import UpstreamProviderError

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
TEMPERATURE = 0.35

SYSTEM_PROMPT = """\
You are an empathetic and psychologically attuned dream interpreter.

Given a dream description, return a JSON object that strictly conforms to this schema (no extra fields):

{
  "mainThemes": ["string"],
  "emotionalTone": "string",
  "symbols": [{"symbol": "string", "meaning": "string"}],
  "personalInsight": "string",
  "guidance": "string"
}

Field guidelines:
- mainThemes: 2-5 recurring motifs.
- emotionalTone: a single phrase describing the mood of the dream.
- symbols: 2-5 key dream elements, each with an emotional or archetypal meaning.
- personalInsight: 2-4 sentences on what the dreamer may be processing.
- guidance: 2-4 supportive sentences. Never clinical or prescriptive.

Output ONLY the raw JSON object, without markdown fences or additional text."""

# Instruções extras por tipo de interpretação
DEPTH_HINTS = {
    "basic": "Keep the interpretation brief.",
    "deep": "Give a thorough interpretation, connecting the symbols to each other.",
    "premium": "Give the most thorough interpretation possible, including archetypes and recurring patterns.",
}

JSON_REMINDER = "IMPORTANT: Your response MUST be a single raw JSON object, no markdown, no extra text."

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class InterpretationError(UpstreamProviderError):
    default_detail = "Interpretation service unavailable - please try again"


class DreamSymbol(BaseModel):
    symbol: str = Field(..., min_length=1)
    meaning: str = Field(..., min_length=1)


class Interpretation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    main_themes: List[str] = Field(..., alias="mainThemes", min_length=1)
    emotional_tone: str = Field(..., alias="emotionalTone", min_length=1)
    symbols: List[DreamSymbol] = Field(default_factory=list)
    personal_insight: str = Field(..., alias="personalInsight", min_length=1)
    guidance: str = Field(..., min_length=1)


def strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_interpretation(raw: str):
    """Retorna Interpretation ou None se o texto não for um JSON válido no formato esperado."""
    try:
        return Interpretation.model_validate(json.loads(strip_fences(raw)))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        logger.warning(f"Invalid interpretation output: {e}")
        return None


async def _call_llm(client: httpx.AsyncClient, prompt: str) -> str:
    response = await client.post(
        settings.LLM_API_URL,
        headers={
            "x-api-key": settings.LLM_API_KEY or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        },
        json={
            "model": settings.LLM_MODEL,
            "max_tokens": settings.LLM_MAX_TOKENS,
            "temperature": TEMPERATURE,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
        },
    )
    if response.status_code != 200:
        logger.error(f"LLM API error {response.status_code}: {response.text[:500]}")
        raise InterpretationError()

    content = response.json().get("content") or []
    text = content[0].get("text") if content else None
    if not text:
        logger.error("LLM API returned empty content")
        raise InterpretationError()
    return text


async def interpret_dream(dream_text: str, interpretation_type: str = "basic", language: str = "en") -> Interpretation:
    """
    Gera a interpretação estruturada de um sonho.

    Raises:
        InterpretationError: provider indisponível ou saída inválida após duas tentativas
    """
    if not settings.LLM_API_KEY:
        logger.error("LLM_API_KEY not configured")
        raise InterpretationError()

    prompt = (
        f"Please interpret this dream. {DEPTH_HINTS.get(interpretation_type, DEPTH_HINTS['basic'])} "
        f"Write the values in the language with code '{language}'.\n\n{dream_text}"
    )

    try:
        async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT) as client:
            result = parse_interpretation(await _call_llm(client, prompt))
            if result is not None:
                return result

            logger.warning("First interpretation attempt returned invalid JSON, retrying with hint")
            result = parse_interpretation(await _call_llm(client, f"{prompt}\n\n{JSON_REMINDER}"))
    except httpx.HTTPError as e:
        logger.error(f"LLM request failed: {type(e).__name__}: {e}")
        raise InterpretationError() from e

    if result is None:
        raise InterpretationError("Interpretation service returned an invalid response")
    return result
