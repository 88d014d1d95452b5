"""
Natural-language logo editing commands.

Two stages: a deterministic regex classifier (``classify``) and an optional
language-model analyzer that refines the structured command. Parsing never
raises; every failure degrades to a lower-confidence generic command.
"""

import logging
import re
import time
from typing import Dict, List, Optional, Tuple

from ..schemas import CommandMetadata, EditCommand, EditCommandType, GeneratedLogo, StructuredCommand, utc_now
from .command_analyzer import CommandAnalysis, CommandAnalyzer
from .prompt_compiler import PromptCompiler, clamp, metadata_for_logo

logger = logging.getLogger(__name__)

_COLORS = r"(red|blue|green|yellow|purple|orange|pink|black|white|gray|gold|silver)"
_STYLES = r"(modern|vintage|classic|bold|elegant|minimalist|playful|professional)"
_SEASONS = r"(christmas|halloween|summer|winter|spring|fall|holiday)"
_ELEMENTS = r"(background|text|icon|shape|element)"

# Checked in order; the first matching kind wins.
COMMAND_PATTERNS: List[Tuple[EditCommandType, List[re.Pattern]]] = [
    (EditCommandType.COLOR_CHANGE, [
        re.compile(r"make.*?(?:more|less)?\s*" + _COLORS, re.I),
        re.compile(r"change.*?color.*?to\s*" + _COLORS, re.I),
        re.compile(r"add.*?" + _COLORS, re.I),
        re.compile(r"(darker|lighter|brighter|more vibrant|more muted)", re.I),
    ]),
    (EditCommandType.STYLE_CHANGE, [
        re.compile(r"make.*?(more|less)?\s*" + _STYLES, re.I),
        re.compile(r"add.*?(gradient|shadow|outline|border|3d effect)", re.I),
        re.compile(r"style.*?" + _STYLES, re.I),
    ]),
    (EditCommandType.TEXT_EDIT, [
        re.compile(r"change.*?text.*?to\s*[\"']([^\"']+)[\"']", re.I),
        re.compile(r"replace.*?text.*?with\s*[\"']([^\"']+)[\"']", re.I),
        re.compile(r"make.*?text\s*(bigger|smaller|larger|bolder|thinner)", re.I),
        re.compile(r"text.*?font.*?(serif|sans|script|display)", re.I),
    ]),
    (EditCommandType.LAYOUT_ADJUST, [
        re.compile(r"move.*?(left|right|up|down|center)", re.I),
        re.compile(r"align.*?(left|right|center|top|bottom)", re.I),
        re.compile(r"spacing.*?(more|less|tighter|looser)", re.I),
        re.compile(r"stack.*?(horizontally|vertically)", re.I),
    ]),
    (EditCommandType.SIZE_CHANGE, [
        re.compile(r"make.*?(bigger|smaller|larger|tiny|huge|medium)", re.I),
        re.compile(r"resize.*?to\s*(\d+)\s*(?:px|percent|%)", re.I),
        re.compile(r"scale.*?(up|down)\s*(?:by\s*(\d+))?", re.I),
    ]),
    (EditCommandType.SHAPE_MODIFY, [
        re.compile(r"make.*?(rounder|sharper|more angular|more curved)", re.I),
        re.compile(r"add.*?(circle|square|triangle|star|diamond)", re.I),
        re.compile(r"remove.*?(corners|edges|sharp parts)", re.I),
    ]),
    (EditCommandType.EFFECT_ADD, [
        re.compile(r"add.*?(glow|shadow|reflection|highlight|depth)", re.I),
        re.compile(r"make.*?(glossy|matte|metallic|textured)", re.I),
        re.compile(r"apply.*?(blur|sharpen|emboss|outline)", re.I),
    ]),
    (EditCommandType.ELEMENT_REMOVE, [
        re.compile(r"remove.*?" + _ELEMENTS, re.I),
        re.compile(r"delete.*?" + _ELEMENTS, re.I),
        re.compile(r"take away.*?" + _ELEMENTS, re.I),
    ]),
    (EditCommandType.SEASONAL_ADAPT, [
        re.compile(r"make.*?" + _SEASONS, re.I),
        re.compile(r"add.*?(snowflakes|leaves|flowers|hearts|stars)", re.I),
        re.compile(r"seasonal.*?(christmas|halloween|summer|winter|spring|fall)", re.I),
    ]),
]

# Intensity keywords, scanned in this order.
STRENGTH_KEYWORDS: List[Tuple[str, float]] = [
    ("subtle", 0.3),
    ("slight", 0.4),
    ("moderate", 0.5),
    ("significant", 0.7),
    ("major", 0.8),
    ("complete", 0.9),
    ("dramatic", 1.0),
]

DEFAULT_STRENGTHS: Dict[EditCommandType, float] = {
    EditCommandType.COLOR_CHANGE: 0.6,
    EditCommandType.STYLE_CHANGE: 0.7,
    EditCommandType.TEXT_EDIT: 0.8,
    EditCommandType.LAYOUT_ADJUST: 0.5,
    EditCommandType.SIZE_CHANGE: 0.4,
    EditCommandType.SHAPE_MODIFY: 0.6,
    EditCommandType.EFFECT_ADD: 0.5,
    EditCommandType.ELEMENT_REMOVE: 0.8,
    EditCommandType.SEASONAL_ADAPT: 0.7,
}

VARIATION_PHRASES = [
    "with subtle differences",
    "with a slightly different approach",
    "with alternative styling",
    "with enhanced details",
    "with refined execution",
]

GENERIC_SUGGESTIONS = [
    "Make it more blue",
    "Add a gradient effect",
    "Make the colors more vibrant",
    "Make it more modern",
    "Add a subtle shadow",
    "Make it more minimalist",
    "Center the elements",
    "Make the text bigger",
    "Add more spacing",
    "Add holiday elements",
    "Make it more festive",
    "Add seasonal colors",
]

INDUSTRY_SUGGESTIONS: Dict[str, List[str]] = {
    "technology": ["Add a digital effect", "Make it more futuristic", "Add circuit-like patterns"],
    "healthcare": ["Add a soft medical cross", "Make the colors calmer"],
    "finance": ["Make it feel more secure", "Add a subtle gold accent"],
    "food_beverage": ["Make the colors warmer", "Add a hand-drawn touch"],
}

MAX_SUGGESTIONS = 8
FALLBACK_CONFIDENCE = 0.5
MIN_CONFIDENCE = 0.1


def classify(text: str) -> EditCommandType:
    lowered = text.lower()
    for command_type, patterns in COMMAND_PATTERNS:
        if any(pattern.search(lowered) for pattern in patterns):
            return command_type
    return EditCommandType.STYLE_CHANGE


def calculate_strength(text: str, command_type: EditCommandType) -> float:
    lowered = text.lower()
    for keyword, strength in STRENGTH_KEYWORDS:
        if keyword in lowered:
            return clamp(strength, 0.1, 1.0)
    return clamp(DEFAULT_STRENGTHS.get(command_type, 0.5), 0.1, 1.0)


def create_variation_prompt(command: EditCommand, index: int) -> str:
    return f"{command.prompt} {VARIATION_PHRASES[index % len(VARIATION_PHRASES)]}"


def get_command_suggestions(current_logo: GeneratedLogo) -> List[str]:
    industry = INDUSTRY_SUGGESTIONS.get(current_logo.metadata.industry, [])
    combined = GENERIC_SUGGESTIONS[:3] + industry + GENERIC_SUGGESTIONS[3:]
    return list(dict.fromkeys(combined))[:MAX_SUGGESTIONS]


def build_analysis_prompt(text: str, current_logo: GeneratedLogo, context: Optional[str] = None) -> str:
    meta = current_logo.metadata
    lines = [
        f'Analyze this logo editing command: "{text}"',
        "",
        "Current logo context:",
        f"- Company: {meta.company_name}",
        f"- Industry: {meta.industry}",
        f"- Styles: {', '.join(meta.styles)}",
        f"- Colors: {', '.join(meta.colors)}",
    ]
    if context:
        lines += ["", f"Additional context: {context}"]
    lines += [
        "",
        "Extract:",
        "1. Main action (what to do)",
        "2. Target element (what to change)",
        "3. Specific value/parameter (how to change it)",
        "4. Confidence level (0.0-1.0)",
        "5. Alternative interpretations",
        "",
        "Return as JSON.",
    ]
    return "\n".join(lines)


class CommandParser:
    def __init__(self, compiler: Optional[PromptCompiler] = None, analyzer: Optional[CommandAnalyzer] = None):
        self.compiler = compiler or PromptCompiler()
        self.analyzer = analyzer

    async def parse(self, text: str, current_logo: GeneratedLogo, context: Optional[str] = None) -> EditCommand:
        start = time.perf_counter()
        try:
            command_type = classify(text)
            analysis = await self._analyze(text, current_logo, context)
            prompt = self.compiler.compile_edit(text, metadata_for_logo(current_logo.metadata))

            return EditCommand(
                type=command_type,
                confidence=analysis.confidence,
                original_text=text,
                structured_command=StructuredCommand(
                    action=analysis.action,
                    target=analysis.target,
                    value=analysis.value,
                    modifiers=analysis.modifiers,
                ),
                prompt=prompt.main_prompt,
                negative_prompt=prompt.negative_prompt,
                strength=calculate_strength(text, command_type),
                metadata=CommandMetadata(
                    parsed_at=utc_now(),
                    processing_time=time.perf_counter() - start,
                    alternatives=analysis.alternatives,
                ),
            )
        except Exception as exc:
            logger.error(f"Failed to parse editing command {text!r}: {exc}")
            return EditCommand(
                type=EditCommandType.STYLE_CHANGE,
                confidence=MIN_CONFIDENCE,
                original_text=text,
                structured_command=StructuredCommand(action="modify", target="overall_style", value=text),
                prompt=f"Modify the logo design: {text}",
                strength=0.5,
                metadata=CommandMetadata(parsed_at=utc_now(), processing_time=time.perf_counter() - start),
            )

    async def _analyze(self, text: str, current_logo: GeneratedLogo, context: Optional[str]) -> CommandAnalysis:
        fallback = CommandAnalysis(action="modify", target="overall", value=text, confidence=FALLBACK_CONFIDENCE)
        if self.analyzer is None:
            return fallback
        try:
            analysis = await self.analyzer.analyze(build_analysis_prompt(text, current_logo, context))
        except Exception as exc:
            logger.warning(f"Command analysis unavailable, using pattern match only: {exc}")
            return fallback
        if analysis.value is None:
            analysis.value = text
        return analysis
