import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from openai import AsyncOpenAI

from ..config import COMMAND_MODEL

logger = logging.getLogger(__name__)


class CommandAnalysisError(RuntimeError):
    """The language model returned nothing usable for a command."""


@dataclass
class CommandAnalysis:
    action: str
    target: Optional[str] = None
    value: Optional[str] = None
    modifiers: List[str] = field(default_factory=list)
    confidence: float = 0.7
    alternatives: List[str] = field(default_factory=list)


class CommandAnalyzer(Protocol):
    async def analyze(self, prompt: str) -> CommandAnalysis:
        ...


def _strip_markdown_json(s: str) -> str:
    """
    Remove common markdown wrappers (```json ... ``` or bare ``` ... ```).
    """
    text = s.strip()
    if text.startswith("```"):
        lines = text.splitlines()[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines).strip()
    return text


def _extract_braced_json(s: str) -> str:
    """
    If the string contains extra prose, grab the first {...} block.
    """
    text = s.strip()
    if text.startswith("{"):
        return text
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return text


def parse_analysis(raw: str) -> CommandAnalysis:
    cleaned = _extract_braced_json(_strip_markdown_json(raw))
    try:
        data: Any = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise CommandAnalysisError(f"Model returned invalid JSON:\n{raw}") from e
    if not isinstance(data, dict) or not data.get("action"):
        raise CommandAnalysisError(f"Model output has no action:\n{raw}")

    try:
        confidence = float(data.get("confidence", 0.7))
    except (TypeError, ValueError):
        confidence = 0.7

    return CommandAnalysis(
        action=str(data["action"]),
        target=_optional_str(data.get("target")),
        value=_optional_str(data.get("value")),
        modifiers=[str(m) for m in data.get("modifiers") or []],
        confidence=max(0.0, min(1.0, confidence)),
        alternatives=[str(a) for a in data.get("alternatives") or []],
    )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class OpenAICommandAnalyzer:
    """Asks an OpenAI model to turn an edit instruction into action/target/value."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = COMMAND_MODEL):
        self.client = client or AsyncOpenAI()
        self.model = model

    async def analyze(self, prompt: str) -> CommandAnalysis:
        response = await self.client.responses.create(
            model=self.model,
            instructions=(
                "You analyze logo editing commands. "
                "Return ONLY a JSON object with the keys: action, target, value, "
                "modifiers (array of strings), confidence (0.0-1.0), alternatives (array of strings). "
                "No explanations."
            ),
            input=prompt,
        )
        raw = response.output_text.strip()
        logger.debug(f"Command analysis output: {raw}")
        return parse_analysis(raw)
