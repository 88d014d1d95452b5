"""
Typed logo variations.

Each variation type has a table of named presets. A request for ``count``
variations walks its table in order (wrapping around) and applies every preset
as one edit of the base logo through ``WorkflowCoordinator.edit_with_prompt``.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple

from ..schemas import GeneratedLogo, VariationResult, VariationResultMetadata, VariationType
from .workflow import WorkflowCoordinator

logger = logging.getLogger(__name__)

Intensity = Literal["subtle", "moderate", "dramatic"]

INTENSITY_STRENGTHS: Dict[str, float] = {
    "subtle": 0.3,
    "moderate": 0.5,
    "dramatic": 1.0,
}


@dataclass(frozen=True)
class VariationPreset:
    description: str
    intensity: Intensity = "moderate"
    elements: Tuple[str, ...] = ()
    colors: Tuple[str, ...] = ()
    aspect_ratio: str = "1:1"


COLOR_VARIATIONS: Dict[str, VariationPreset] = {
    "monochrome": VariationPreset("black and white monochrome version"),
    "vibrant": VariationPreset("more vibrant and saturated colors"),
    "muted": VariationPreset("muted and pastel color palette"),
    "complementary": VariationPreset("complementary color scheme", "dramatic"),
    "analogous": VariationPreset("analogous color harmony", "subtle"),
    "triadic": VariationPreset("triadic color scheme", "dramatic"),
    "warm": VariationPreset("warm color palette (reds, oranges, yellows)"),
    "cool": VariationPreset("cool color palette (blues, greens, purples)"),
    "corporate": VariationPreset("professional corporate colors", "subtle"),
    "playful": VariationPreset("bright and playful colors", "dramatic"),
}

LAYOUT_VARIATIONS: Dict[str, VariationPreset] = {
    "horizontal": VariationPreset("horizontal layout arrangement"),
    "vertical": VariationPreset("vertical stacked layout"),
    "circular": VariationPreset("circular or radial arrangement", "dramatic"),
    "centered": VariationPreset("centered symmetrical layout", "subtle"),
    "offset": VariationPreset("asymmetrical offset composition"),
    "compact": VariationPreset("compact tightly spaced layout"),
    "spread": VariationPreset("spread out spacious layout"),
    "layered": VariationPreset("layered depth composition", "dramatic"),
    "grid": VariationPreset("grid-based structured layout", "subtle"),
    "organic": VariationPreset("organic flowing arrangement", "dramatic"),
}

SEASONAL_VARIATIONS: Dict[str, VariationPreset] = {
    "spring": VariationPreset(
        "spring theme with fresh greens, flowers, and growth elements",
        elements=("flowers", "leaves", "growth", "fresh"),
        colors=("#90EE90", "#32CD32", "#FFB6C1", "#FFF8DC"),
    ),
    "summer": VariationPreset(
        "summer theme with bright warm colors and sunny elements",
        "dramatic",
        elements=("sun", "beach", "bright", "energy"),
        colors=("#FFD700", "#FF6347", "#87CEEB", "#F0E68C"),
    ),
    "autumn": VariationPreset(
        "autumn theme with warm oranges, reds, and falling leaves",
        elements=("leaves", "harvest", "warmth", "cozy"),
        colors=("#FF8C00", "#DC143C", "#DAA520", "#CD853F"),
    ),
    "winter": VariationPreset(
        "winter theme with cool blues, whites, and snow elements",
        elements=("snow", "ice", "crystalline", "calm"),
        colors=("#E6F3FF", "#B0C4DE", "#708090", "#F0F8FF"),
    ),
    "christmas": VariationPreset(
        "Christmas theme with red, green, gold and festive elements",
        "dramatic",
        elements=("holly", "stars", "festive", "celebration"),
        colors=("#DC143C", "#228B22", "#FFD700", "#F5F5DC"),
    ),
    "halloween": VariationPreset(
        "Halloween theme with orange, black, purple spooky elements",
        "dramatic",
        elements=("spooky", "mystical", "dark", "mysterious"),
        colors=("#FF4500", "#000000", "#8A2BE2", "#696969"),
    ),
}

STYLE_VARIATIONS: Dict[str, VariationPreset] = {
    "minimalist": VariationPreset("clean minimalist style with simple forms", "dramatic"),
    "vintage": VariationPreset("retro vintage style with aged effects", "dramatic"),
    "modern": VariationPreset("contemporary modern design"),
    "elegant": VariationPreset("sophisticated elegant styling"),
    "bold": VariationPreset("strong bold visual impact", "dramatic"),
    "playful": VariationPreset("fun and whimsical character"),
    "professional": VariationPreset("corporate professional appearance", "subtle"),
    "artistic": VariationPreset("creative artistic interpretation", "dramatic"),
    "geometric": VariationPreset("geometric structured forms"),
    "organic": VariationPreset("natural flowing organic shapes"),
}

SIZE_VARIATIONS: Dict[str, VariationPreset] = {
    "icon": VariationPreset("optimized for small icon usage with increased thickness and simplified details"),
    "large": VariationPreset("designed for large scale application with enhanced fine details"),
    "banner": VariationPreset("adapted for horizontal banner format with extended width", aspect_ratio="16:9"),
    "vertical": VariationPreset("configured for vertical usage with stacked elements", aspect_ratio="9:16"),
}

EFFECT_VARIATIONS: Dict[str, VariationPreset] = {
    "shadow": VariationPreset("with subtle shadow and depth effects"),
    "metallic": VariationPreset("with metallic gradient and shine"),
    "glow": VariationPreset("with glowing outline and luminous effect"),
    "embossed": VariationPreset("with embossed 3D appearance"),
}

VARIATION_PRESETS: Dict[VariationType, Dict[str, VariationPreset]] = {
    VariationType.COLOR: COLOR_VARIATIONS,
    VariationType.LAYOUT: LAYOUT_VARIATIONS,
    VariationType.SEASONAL: SEASONAL_VARIATIONS,
    VariationType.STYLE: STYLE_VARIATIONS,
    VariationType.SIZE: SIZE_VARIATIONS,
    VariationType.EFFECT: EFFECT_VARIATIONS,
}

PROMPT_TEMPLATES: Dict[VariationType, str] = {
    VariationType.COLOR: (
        "{base} with {description}. Maintain the same composition and design elements "
        "but change the color scheme."
    ),
    VariationType.LAYOUT: (
        "{base} with {description}. Keep the same visual elements and colors "
        "but change the layout and composition."
    ),
    VariationType.SEASONAL: (
        "{base} adapted for {description}. Incorporate {elements} while maintaining the core logo design."
    ),
    VariationType.STYLE: (
        "{base} reimagined in {description}. Maintain the core concept but transform the visual style."
    ),
    VariationType.SIZE: "{base} {description}",
    VariationType.EFFECT: "{base} {description}. Enhance the visual impact while preserving the core design.",
}

# Types whose preset names are offered to the user for browsing.
BROWSABLE_TYPES = (VariationType.COLOR, VariationType.LAYOUT, VariationType.SEASONAL, VariationType.STYLE)


def build_variation_prompt(base_prompt: str, variation_type: VariationType, preset: VariationPreset) -> str:
    return PROMPT_TEMPLATES[variation_type].format(
        base=base_prompt,
        description=preset.description,
        elements=", ".join(preset.elements),
    )


def pick_presets(variation_type: VariationType, count: int) -> List[Tuple[str, VariationPreset]]:
    """``count`` presets of ``variation_type`` in table order, wrapping around."""
    table = list(VARIATION_PRESETS[variation_type].items())
    return [table[i % len(table)] for i in range(count)]


def variation_options() -> Dict[str, List[str]]:
    return {t.value: list(VARIATION_PRESETS[t]) for t in BROWSABLE_TYPES}


def variation_descriptions(variation_type: VariationType) -> Dict[str, str]:
    if variation_type not in BROWSABLE_TYPES:
        return {}
    return {key: preset.description for key, preset in VARIATION_PRESETS[variation_type].items()}


class VariationService:
    def __init__(self, coordinator: WorkflowCoordinator):
        self.coordinator = coordinator

    async def generate_variations(
        self,
        base_logo: GeneratedLogo,
        variation_type: VariationType,
        count: int = 4,
        custom_parameters: Optional[Dict[str, Any]] = None,
    ) -> VariationResult:
        start = time.perf_counter()
        variations: List[GeneratedLogo] = []
        errors: List[str] = []

        for key, preset in pick_presets(variation_type, count):
            result = await self.coordinator.edit_with_prompt(
                base_logo,
                build_variation_prompt(base_logo.prompt.main_prompt, variation_type, preset),
                negative_prompt=base_logo.prompt.negative_prompt,
                strength=INTENSITY_STRENGTHS[preset.intensity],
                aspect_ratio=preset.aspect_ratio,
                generation_type="variation",
                message=f"Creating {key} {variation_type.value} variation...",
            )
            if result.success and result.logos:
                variations.extend(result.logos)
            else:
                logger.warning(f"{variation_type.value} variation {key!r} failed: {result.error}")
                errors.append(f"{key}: {result.error or 'Unknown error'}")

        return VariationResult(
            id=f"variation_{uuid.uuid4().hex[:16]}",
            type=variation_type,
            base_logo=base_logo,
            variations=variations,
            errors=errors,
            metadata=VariationResultMetadata(
                processing_time=time.perf_counter() - start,
                success_count=len(variations),
                failure_count=len(errors),
                parameters=dict(custom_parameters or {}),
            ),
        )

    async def generate_batch_variations(
        self,
        base_logo: GeneratedLogo,
        types: List[VariationType],
        count_per_type: int = 2,
    ) -> List[VariationResult]:
        return [await self.generate_variations(base_logo, t, count_per_type) for t in types]
