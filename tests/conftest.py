import base64
import os
import sys
import tempfile
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Keep test runs away from real providers and the package directory.
os.environ.setdefault("LOGO_OUTPUT_DIR", tempfile.mkdtemp(prefix="logo_studio_"))
os.environ["LOGO_ANALYZE_COMMANDS"] = "false"
os.environ["LOGO_IMAGE_PROVIDER"] = "flux"

import pytest

from logo_studio.schemas import (
    BusinessInfo,
    GeneratedLogo,
    GenerationRequest,
    LogoMetadata,
)
from logo_studio.services.image_gateway import ImageOk
from logo_studio.services.image_resolver import ImageResolutionError
from logo_studio.services.prompt_compiler import PromptCompiler
from logo_studio.services.workflow import WorkflowCoordinator, WorkflowRegistry

INLINE_IMAGE = "data:image/png;base64,iVBORw0KGgo="


class FakeGateway:
    """Records provider calls; replays queued outcomes, then succeeds."""

    def __init__(self, outcomes=None):
        self.calls = []
        self.outcomes = list(outcomes or [])

    async def generate_image(self, prompt, aspect_ratio="1:1", output_format="png"):
        self.calls.append({"kind": "generate", "prompt": prompt, "aspect_ratio": aspect_ratio})
        return self._next()

    async def edit_image(
        self,
        input_image,
        prompt,
        aspect_ratio="1:1",
        output_format="png",
        prompt_upsampling=False,
        safety_tolerance=2,
    ):
        self.calls.append(
            {
                "kind": "edit",
                "prompt": prompt,
                "input_image": input_image,
                "aspect_ratio": aspect_ratio,
                "prompt_upsampling": prompt_upsampling,
            }
        )
        return self._next()

    def _next(self):
        n = len(self.calls)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome
        return ImageOk(image_url=f"https://img.test/{n}.png", image_data=INLINE_IMAGE, generation_id=f"gen-{n}")


class FakeImages:
    """Stands in for ``AsyncOpenAI().images``; every call returns the same PNG bytes."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def generate(self, **kwargs):
        return self._respond("generate", kwargs)

    async def edit(self, **kwargs):
        return self._respond("edit", kwargs)

    def _respond(self, kind, kwargs):
        self.calls.append((kind, kwargs))
        if self.error is not None:
            raise self.error
        item = type("Image", (), {"b64_json": base64.b64encode(b"png-bytes").decode("utf-8")})()
        return type("ImagesResponse", (), {"data": [item]})()


class FakeOpenAI:
    def __init__(self, error=None):
        self.images = FakeImages(error)


class FakeResolver:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def resolve(self, url):
        self.calls.append(url)
        if self.fail or not url:
            raise ImageResolutionError("Failed to fetch image: 404")
        return INLINE_IMAGE


@pytest.fixture
def business():
    return BusinessInfo(
        company_name="Acme",
        industry="technology",
        business_type="startup",
        style_preferences=["modern"],
        color_preferences=["blue"],
    )


@pytest.fixture
def generation_request(business):
    return GenerationRequest(business=business)


@pytest.fixture
def compiler():
    return PromptCompiler()


@pytest.fixture
def sample_logo(compiler, generation_request):
    """A finished logo that only has a URL, no inline data."""
    return GeneratedLogo(
        id="logo_sample",
        image_url="https://img.test/original.png",
        prompt=compiler.compile(generation_request),
        request_id="gen-original",
        metadata=LogoMetadata(
            company_name="Acme",
            industry="technology",
            styles=["modern"],
            colors=["blue"],
        ),
        status="completed",
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def registry():
    return WorkflowRegistry()


@pytest.fixture
def coordinator(gateway, compiler, resolver, registry):
    return WorkflowCoordinator(gateway=gateway, compiler=compiler, resolver=resolver, registry=registry)


@pytest.fixture
def progress_log():
    """Collects progress snapshots; pass ``progress_log.append`` as the callback."""
    return []

