"""
Boundary to the external image generation/editing providers.

The workflow only ever sees ``ImageOk`` / ``ImageErr`` values coming back from an
``ImageGateway``; provider protocols (Flux Kontext Pro polling, OpenAI Images)
stay inside the adapters below.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, Protocol, Tuple, Type, TypeVar, Union

import httpx
from openai import AsyncOpenAI, BadRequestError, OpenAIError

from ..config import (
    FLUX_API_KEY,
    FLUX_BASE_URL,
    FLUX_MAX_RETRIES,
    FLUX_POLL_INTERVAL,
    FLUX_TIMEOUT,
    IMAGE_BACKGROUND,
    IMAGE_MODEL,
    IMAGE_SIZE,
    OUTPUT_DIR,
    OUTPUT_PREFIX,
    STATIC_URL_PATH,
    ensure_output_dir,
)
from .image_resolver import ImageResolutionError, fetch_as_data_url, split_data_url, to_data_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUPPORTED_ASPECT_RATIOS = ["1:1", "16:9", "9:16", "4:3", "3:4", "21:9", "9:21", "2:3", "3:2"]


# -------------------
# Results
# -------------------

@dataclass(frozen=True)
class ImageOk:
    image_url: str
    image_data: Optional[str] = None
    generation_id: Optional[str] = None
    success: Literal[True] = True


@dataclass(frozen=True)
class ImageErr:
    error: str
    generation_id: Optional[str] = None
    success: Literal[False] = False


ImageResult = Union[ImageOk, ImageErr]


class ImageGateway(Protocol):
    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "1:1",
        output_format: str = "png",
    ) -> ImageResult:
        ...

    async def edit_image(
        self,
        input_image: str,
        prompt: str,
        aspect_ratio: str = "1:1",
        output_format: str = "png",
        prompt_upsampling: bool = False,
        safety_tolerance: int = 2,
    ) -> ImageResult:
        ...


def is_valid_aspect_ratio(aspect_ratio: str) -> bool:
    return aspect_ratio in SUPPORTED_ASPECT_RATIOS


# -------------------
# Retry
# -------------------

async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    give_up_on: Tuple[Type[BaseException], ...] = (),
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with up to ``max_retries`` extra attempts.

    Delay before retry ``n`` (1-based) is ``min(base_delay * 2**n, max_delay)``.
    Exceptions listed in ``give_up_on`` propagate immediately.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except give_up_on:
            raise
        except retry_on as exc:
            attempt += 1
            if attempt > max_retries:
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(f"Attempt {attempt} failed ({exc}); retrying in {delay:.1f}s")
            await sleep(delay)


# -------------------
# Flux Kontext Pro
# -------------------

class FluxAPIError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class FluxModerationError(RuntimeError):
    def __init__(self, message: str, generation_id: str):
        super().__init__(message)
        self.generation_id = generation_id


class FluxTimeoutError(RuntimeError):
    def __init__(self, message: str, generation_id: str):
        super().__init__(message)
        self.generation_id = generation_id


class FluxKontextGateway:
    """Flux Kontext Pro adapter: submit, poll until ready, download the sample."""

    def __init__(
        self,
        api_key: str = FLUX_API_KEY,
        base_url: str = FLUX_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = FLUX_MAX_RETRIES,
        poll_interval: float = FLUX_POLL_INTERVAL,
        timeout: float = FLUX_TIMEOUT,
        backoff_base: float = 1.0,
        backoff_cap: float = 10.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=60.0)
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "1:1",
        output_format: str = "png",
        input_image: Optional[str] = None,
        prompt_upsampling: bool = False,
        safety_tolerance: int = 2,
        seed: Optional[int] = None,
    ) -> ImageResult:
        if aspect_ratio and not is_valid_aspect_ratio(aspect_ratio):
            return ImageErr(error=f"Unsupported aspect ratio: {aspect_ratio}")

        payload: Dict[str, Any] = {
            "prompt": prompt,
            "output_format": output_format,
            "prompt_upsampling": prompt_upsampling,
            "safety_tolerance": safety_tolerance,
        }
        if input_image:
            payload["input_image"] = input_image
        if aspect_ratio:
            payload["aspect_ratio"] = aspect_ratio
        if seed is not None:
            payload["seed"] = seed

        try:
            return await retry_with_backoff(
                lambda: self._run_once(payload),
                max_retries=self.max_retries,
                give_up_on=(FluxModerationError, FluxTimeoutError),
                base_delay=self.backoff_base,
                max_delay=self.backoff_cap,
            )
        except (FluxModerationError, FluxTimeoutError) as exc:
            logger.error(f"Flux generation {exc.generation_id} stopped: {exc}")
            return ImageErr(error=str(exc), generation_id=exc.generation_id)
        except Exception as exc:
            logger.error(f"Flux generation failed after {self.max_retries} retries: {exc}")
            return ImageErr(error=str(exc) or "Unknown error occurred")

    async def edit_image(
        self,
        input_image: str,
        prompt: str,
        aspect_ratio: str = "1:1",
        output_format: str = "png",
        prompt_upsampling: bool = False,
        safety_tolerance: int = 2,
    ) -> ImageResult:
        return await self.generate_image(
            prompt,
            aspect_ratio=aspect_ratio,
            output_format=output_format,
            input_image=input_image,
            prompt_upsampling=prompt_upsampling,
            safety_tolerance=safety_tolerance,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _run_once(self, payload: Dict[str, Any]) -> ImageOk:
        created = await self._create_request(payload)
        generation_id = created["id"]
        result = await self._wait_for_completion(created["polling_url"], generation_id)

        sample = (result.get("result") or {}).get("sample")
        if not sample:
            raise FluxAPIError("No image URL in result", response=result)

        try:
            image_data = await fetch_as_data_url(self.client, sample, default_content_type="image/jpeg")
        except ImageResolutionError as exc:
            raise FluxAPIError("Failed to download generated image") from exc
        return ImageOk(image_url=sample, image_data=image_data, generation_id=generation_id)

    def _headers(self) -> Dict[str, str]:
        return {"accept": "application/json", "x-key": self.api_key}

    async def _create_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise FluxAPIError("Flux API key is not configured")

        response = await self.client.post(
            f"{self.base_url}/v1/flux-kontext-pro",
            json=payload,
            headers=self._headers(),
        )
        if response.status_code >= 400:
            raise FluxAPIError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                response=_safe_json(response),
            )
        return response.json()

    async def _poll_result(self, polling_url: str) -> Dict[str, Any]:
        response = await self.client.get(polling_url, headers=self._headers())
        if response.status_code >= 400:
            raise FluxAPIError(
                f"Polling failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                response=_safe_json(response),
            )
        return response.json()

    async def _wait_for_completion(self, polling_url: str, generation_id: str) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while loop.time() < deadline:
            try:
                result = await self._poll_result(polling_url)
            except FluxAPIError:
                raise
            except (httpx.HTTPError, ValueError) as exc:
                # Network or parsing hiccup; keep polling.
                logger.warning(f"Polling error for {generation_id}, retrying: {exc}")
                await asyncio.sleep(self.poll_interval)
                continue

            status = result.get("status")
            if status == "Ready":
                return result
            if status in ("Error", "Failed"):
                raise FluxAPIError(result.get("error") or "Generation failed", response=result)
            if status in ("Request Moderated", "Content Moderated"):
                raise FluxModerationError("Content was moderated by safety filters", generation_id)
            if status not in ("Pending", "Running"):
                logger.warning(f"Unknown Flux status: {status}")
            await asyncio.sleep(self.poll_interval)

        raise FluxTimeoutError(f"Generation timed out after {self.timeout}s", generation_id)


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}


# -------------------
# OpenAI Images
# -------------------

class OpenAIImageGateway:
    """OpenAI Images adapter; outputs are saved locally and served by URL."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, max_retries: int = FLUX_MAX_RETRIES):
        self.client = client or AsyncOpenAI()
        self.max_retries = max_retries

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "1:1",
        output_format: str = "png",
    ) -> ImageResult:
        async def _call() -> str:
            response = await self.client.images.generate(
                model=IMAGE_MODEL,
                prompt=prompt,
                size=IMAGE_SIZE,
                background=IMAGE_BACKGROUND,
                output_format=output_format,
            )
            return response.data[0].b64_json

        return await self._run(_call, output_format)

    async def edit_image(
        self,
        input_image: str,
        prompt: str,
        aspect_ratio: str = "1:1",
        output_format: str = "png",
        prompt_upsampling: bool = False,
        safety_tolerance: int = 2,
    ) -> ImageResult:
        try:
            content_type, raw = split_data_url(input_image)
        except (ImageResolutionError, ValueError) as exc:
            return ImageErr(error=f"Invalid input image: {exc}")

        async def _call() -> str:
            response = await self.client.images.edit(
                model=IMAGE_MODEL,
                image=(f"input.{content_type.split('/')[-1]}", raw, content_type),
                prompt=prompt,
                size=IMAGE_SIZE,
            )
            return response.data[0].b64_json

        return await self._run(_call, output_format)

    async def _run(self, call: Callable[[], Awaitable[str]], output_format: str) -> ImageResult:
        try:
            image_base64 = await retry_with_backoff(
                call,
                max_retries=self.max_retries,
                retry_on=(OpenAIError,),
                give_up_on=(BadRequestError,),
            )
        except OpenAIError as exc:
            logger.error(f"OpenAI image call failed: {exc}")
            return ImageErr(error=f"OpenAI error: {exc}")

        raw = base64.b64decode(image_base64)
        filename = self._save_image(raw, output_format)
        return ImageOk(
            image_url=f"{STATIC_URL_PATH}/{filename}",
            image_data=to_data_url(raw, f"image/{output_format}"),
            generation_id=filename.rsplit(".", 1)[0],
        )

    def _save_image(self, raw: bytes, output_format: str) -> str:
        ensure_output_dir()
        run_id = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        filename = f"{OUTPUT_PREFIX}_{run_id}.{output_format}"
        with open(OUTPUT_DIR / filename, "wb") as f:
            f.write(raw)
        return filename
