"""Compile business information and edit instructions into image-provider prompts."""

import logging
from typing import Dict, List, Optional

from ..schemas import (
    BusinessInfo,
    GeneratedPrompt,
    GenerationRequest,
    GenerationType,
    InspirationLogo,
    PromptMetadata,
    QualitySettings,
)

logger = logging.getLogger(__name__)

LOGO_GENERATION_BASE_PROMPT = (
    "Create a professional logo design for {company_name}. Style: {style_description}. "
    "Industry: {industry_description}. Colors: {color_description}. "
    "Target audience: {audience_description}. Requirements: {requirements}. "
    "The logo should be clean, scalable, and suitable for both digital and print use."
)

LOGO_EDITING_BASE_PROMPT = (
    "Modify the existing logo design. Changes requested: {editing_instructions}. "
    "Maintain the core brand identity while implementing the requested modifications. "
    "Ensure the result remains professional and cohesive."
)

DEFAULT_STYLE_DESCRIPTION = "modern and professional"
DEFAULT_INDUSTRY_DESCRIPTION = "professional and modern"
DEFAULT_COLOR_DESCRIPTION = "professional color palette"
DEFAULT_AUDIENCE_DESCRIPTION = "general consumers"

STYLE_DESCRIPTIONS: Dict[str, str] = {
    "minimalist": "clean, simple lines with plenty of whitespace, geometric shapes, modern typography",
    "modern": "contemporary design with bold shapes, gradient effects, sleek typography",
    "classic": "timeless design with traditional elements, serif fonts, elegant proportions",
    "playful": "fun and energetic with bright colors, whimsical elements, friendly typography",
    "professional": "sophisticated and trustworthy with balanced composition, corporate feel",
    "creative": "artistic and unique with custom illustrations, experimental typography",
    "bold": "strong visual impact with high contrast, thick lines, powerful typography",
    "elegant": "refined and luxurious with graceful curves, premium feel, sophisticated colors",
    "vintage": "retro-inspired with classic typography, aged effects, nostalgic elements",
    "geometric": "angular shapes, mathematical precision, structured composition",
    "organic": "natural flowing forms, curved lines, nature-inspired elements",
    "abstract": "conceptual design with symbolic elements, artistic interpretation",
}

INDUSTRY_DESCRIPTIONS: Dict[str, str] = {
    "technology": "tech-forward with digital elements, innovation-focused, forward-thinking",
    "healthcare": "trustworthy and caring with medical symbolism, healing colors, professional",
    "finance": "stable and secure with strong typography, conservative colors, trustworthy",
    "education": "knowledge-focused with learning symbols, approachable, inspiring",
    "retail": "customer-friendly with commercial appeal, attractive, accessible",
    "food_beverage": "appetizing and fresh with culinary elements, warm colors, inviting",
    "automotive": "dynamic and powerful with motion elements, strong lines, performance-oriented",
    "real_estate": "solid and reliable with architectural elements, stability, growth",
    "entertainment": "exciting and engaging with dynamic elements, vibrant colors, energetic",
    "sports": "active and competitive with athletic symbols, energetic, powerful",
    "nonprofit": "compassionate and hopeful with community elements, inspiring, trustworthy",
    "professional_services": "expert and reliable with clean design, professional, authoritative",
    "beauty_fashion": "stylish and attractive with elegant design, trendy, sophisticated",
    "travel_hospitality": "welcoming and adventurous with travel elements, inviting, global",
    "other": "unique and distinctive with custom approach, tailored to specific needs",
}

COLOR_DESCRIPTIONS: Dict[str, str] = {
    "blue": "trust and reliability with various blue tones",
    "green": "growth and nature with fresh green hues",
    "red": "energy and passion with bold red accents",
    "purple": "creativity and luxury with rich purple tones",
    "orange": "enthusiasm and warmth with vibrant orange",
    "black": "sophistication and power with black and dark tones",
    "gray": "professionalism and neutrality with gray palette",
    "gold": "luxury and success with golden accents",
    "pink": "creativity and compassion with pink hues",
    "teal": "balance and clarity with teal tones",
    "indigo": "wisdom and depth with deep blue-purple",
    "yellow": "optimism and energy with bright yellow",
    "brown": "reliability and earthiness with warm browns",
    "white": "purity and simplicity with clean white space",
}

BUSINESS_TYPE_REQUIREMENTS: Dict[str, str] = {
    "startup": "innovative and disruptive feel",
    "enterprise": "corporate and established presence",
    "nonprofit": "compassionate and trustworthy appeal",
    "ecommerce": "commercial and customer-friendly",
    "personal_brand": "personal and authentic character",
}

TECHNICAL_REQUIREMENTS = [
    "vector-style design suitable for scalability",
    "works in both color and monochrome",
]

BASE_STYLE_MODIFIERS = ["logo design", "professional", "clean", "scalable", "vector art", "brand identity"]

STYLE_MODIFIERS: Dict[str, List[str]] = {
    "minimalist": ["minimal", "simple", "clean lines"],
    "modern": ["contemporary", "sleek", "current"],
    "vintage": ["retro", "classic", "timeless"],
    "bold": ["strong", "impactful", "powerful"],
    "elegant": ["refined", "sophisticated", "graceful"],
}

INDUSTRY_MODIFIERS: Dict[str, List[str]] = {
    "technology": ["tech", "digital", "innovative"],
    "healthcare": ["medical", "caring", "trustworthy"],
    "finance": ["financial", "secure", "stable"],
    "creative": ["artistic", "creative", "unique"],
}

NEGATIVE_PROMPT = ", ".join(
    [
        "blurry",
        "low quality",
        "pixelated",
        "distorted",
        "text",
        "letters",
        "words",
        "cluttered",
        "messy",
        "unprofessional",
        "amateur",
        "cartoon character",
        "realistic photo",
        "human face",
        "complex details",
        "too many elements",
    ]
)

VARIATION_MODIFIERS = [
    "emphasize symbolism and meaning",
    "focus on typography and text treatment",
    "highlight geometric shapes and structure",
    "incorporate subtle gradients and depth",
    "maximize simplicity and clarity",
]

QUALITY_PRESETS: Dict[str, QualitySettings] = {
    "new": QualitySettings(steps=30, guidance=9.0),
    "variation": QualitySettings(steps=25, guidance=8.0, strength=0.5),
    "edit": QualitySettings(steps=20, guidance=7.5, strength=0.7),
}

# Provider-accepted ranges.
MAX_PROMPT_LENGTH = 1000
STEPS_RANGE = (1, 50)
GUIDANCE_RANGE = (1.0, 15.0)
STRENGTH_RANGE = (0.1, 1.0)


class PromptCompilationError(ValueError):
    """Raised when no usable prompt can be built from the input."""


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def build_style_description(style_preferences: List[str]) -> str:
    descriptions = [STYLE_DESCRIPTIONS[s] for s in style_preferences if s in STYLE_DESCRIPTIONS]
    return ", combining ".join(descriptions) or DEFAULT_STYLE_DESCRIPTION


def build_industry_description(industry: str) -> str:
    return INDUSTRY_DESCRIPTIONS.get(industry, DEFAULT_INDUSTRY_DESCRIPTION)


def build_color_description(color_preferences: List[str]) -> str:
    if not color_preferences:
        return DEFAULT_COLOR_DESCRIPTION
    if len(color_preferences) == 1:
        return COLOR_DESCRIPTIONS.get(color_preferences[0], "professional colors")

    descriptions = [COLOR_DESCRIPTIONS[c] for c in color_preferences if c in COLOR_DESCRIPTIONS]
    if not descriptions:
        return "harmonious palette combining " + ", ".join(color_preferences)
    return "harmonious palette combining " + " with ".join(descriptions)


def build_requirements(business: BusinessInfo) -> str:
    requirements: List[str] = []
    if business.business_type in BUSINESS_TYPE_REQUIREMENTS:
        requirements.append(BUSINESS_TYPE_REQUIREMENTS[business.business_type])
    if business.additional_requirements.strip():
        requirements.append(business.additional_requirements.strip())
    requirements.extend(TECHNICAL_REQUIREMENTS)
    return ", ".join(requirements)


def determine_aspect_ratio(business_type: str) -> str:
    # Wide headers suit storefronts; everything else is square.
    return "16:9" if business_type == "ecommerce" else "1:1"


class PromptCompiler:
    """Deterministic prompt builder for new logos, variations, and edits."""

    def compile(self, request: GenerationRequest, variation_index: Optional[int] = None) -> GeneratedPrompt:
        business = request.business
        if not business.company_name.strip():
            raise PromptCompilationError("Cannot build a logo prompt without a company name.")

        main_prompt = self._creation_prompt(business, request.inspiration_logo)
        if request.custom_prompt and request.custom_prompt.strip():
            main_prompt += f" Additional direction: {request.custom_prompt.strip()}."
        if variation_index is not None:
            modifier = VARIATION_MODIFIERS[variation_index % len(VARIATION_MODIFIERS)]
            main_prompt += f" Variation {variation_index + 1}: {modifier}."

        generation_type: GenerationType = "new" if variation_index is None else "variation"
        prompt = GeneratedPrompt(
            main_prompt=main_prompt,
            negative_prompt=NEGATIVE_PROMPT,
            style_modifiers=self._style_modifiers(business.style_preferences, business.industry),
            aspect_ratio=determine_aspect_ratio(business.business_type),
            quality_settings=QUALITY_PRESETS[generation_type],
            metadata=PromptMetadata(
                company_name=business.company_name,
                industry=business.industry,
                styles=list(business.style_preferences),
                colors=list(business.color_preferences),
                inspiration_used=request.inspiration_logo is not None,
            ),
        )
        return self.optimize(prompt)

    def compile_edit(self, instructions: str, metadata: PromptMetadata) -> GeneratedPrompt:
        if not instructions or not instructions.strip():
            raise PromptCompilationError("Edit instructions are empty.")

        main_prompt = LOGO_EDITING_BASE_PROMPT.format(editing_instructions=instructions.strip())
        main_prompt += f" Company: {metadata.company_name}. Industry: {metadata.industry}."
        if metadata.styles:
            main_prompt += f" Maintain {', '.join(metadata.styles)} style characteristics."
        if metadata.colors:
            main_prompt += f" Consider color preferences: {', '.join(metadata.colors)}."

        prompt = GeneratedPrompt(
            main_prompt=main_prompt,
            negative_prompt=NEGATIVE_PROMPT,
            style_modifiers=self._style_modifiers(metadata.styles, metadata.industry),
            aspect_ratio="1:1",
            quality_settings=QUALITY_PRESETS["edit"],
            metadata=metadata,
        )
        return self.optimize(prompt)

    def generate_variations(self, request: GenerationRequest, count: int = 3) -> List[GeneratedPrompt]:
        """Fan one request out into ``count`` prompts with rotating emphasis."""
        variations: List[GeneratedPrompt] = []
        for i in range(count):
            prompt = self.compile(request, variation_index=i)
            settings = prompt.quality_settings
            bumped = QualitySettings(
                steps=settings.steps,
                guidance=settings.guidance + i * 0.5,
                strength=None if settings.strength is None else settings.strength + i * 0.1,
            )
            variations.append(self.optimize(prompt.model_copy(update={"quality_settings": bumped})))
        return variations

    def optimize(self, prompt: GeneratedPrompt) -> GeneratedPrompt:
        """Clamp prompt length and quality settings to what the provider accepts."""
        main_prompt = prompt.main_prompt
        if len(main_prompt) > MAX_PROMPT_LENGTH:
            logger.debug(f"Truncating prompt from {len(main_prompt)} characters")
            main_prompt = main_prompt[: MAX_PROMPT_LENGTH - 3] + "..."

        settings = prompt.quality_settings
        clamped = QualitySettings(
            steps=int(clamp(settings.steps, *STEPS_RANGE)),
            guidance=clamp(settings.guidance, *GUIDANCE_RANGE),
            strength=None if settings.strength is None else clamp(settings.strength, *STRENGTH_RANGE),
        )
        return prompt.model_copy(update={"main_prompt": main_prompt, "quality_settings": clamped})

    def _creation_prompt(self, business: BusinessInfo, inspiration: Optional[InspirationLogo]) -> str:
        prompt = LOGO_GENERATION_BASE_PROMPT.format(
            company_name=business.company_name,
            style_description=build_style_description(business.style_preferences),
            industry_description=build_industry_description(business.industry),
            color_description=build_color_description(business.color_preferences),
            audience_description=business.target_audience.strip() or DEFAULT_AUDIENCE_DESCRIPTION,
            requirements=build_requirements(business),
        )

        if business.brand_description.strip():
            prompt += f" Brand essence: {business.brand_description.strip()}."

        if inspiration is not None:
            prompt += (
                f' Use the provided inspiration logo as a base design, adapting its visual style and structure '
                f'for "{business.company_name}". Maintain the {inspiration.category} {inspiration.style} aesthetic '
                f"while replacing any existing text with the new company name."
            )

        branding = business.existing_branding
        if branding is not None and branding.has_logo:
            prompt += (
                " Integrate with existing brand elements: "
                f"{branding.brand_description or 'established brand identity'}."
            )
            if branding.brand_colors:
                prompt += f" Existing brand colors: {', '.join(branding.brand_colors)}."

        return prompt

    def _style_modifiers(self, styles: List[str], industry: str) -> List[str]:
        modifiers = list(BASE_STYLE_MODIFIERS)
        for style in styles:
            modifiers.extend(STYLE_MODIFIERS.get(style, []))
        modifiers.extend(INDUSTRY_MODIFIERS.get(industry, []))
        # Preserve first occurrence order.
        return list(dict.fromkeys(modifiers))


def build_context_edit_prompt(business: BusinessInfo) -> str:
    """Prompt for re-working an inspiration image into a logo for ``business``."""
    styles = ", ".join(business.style_preferences) or "modern"
    colors = ", ".join(business.color_preferences) or "professional colors"
    industry = business.industry or "business"
    name = business.company_name
    return (
        f'Edit this existing logo design. MODIFY it for the company "{name}". '
        f'Replace any existing company name or text with "{name}". '
        f"Adapt the design for a {industry} business with {styles} style and {colors}. "
        "KEEP the overall visual structure, layout, and design elements but customize the text "
        "and refine details to match the new business requirements. "
        "Maintain the same artistic style and composition."
    )


def metadata_for_logo(logo_metadata) -> PromptMetadata:
    """Edit-mode context taken from an existing logo's metadata."""
    return PromptMetadata(
        company_name=logo_metadata.company_name,
        industry=logo_metadata.industry,
        styles=list(logo_metadata.styles),
        colors=list(logo_metadata.colors),
        inspiration_used=logo_metadata.inspiration_used,
    )
