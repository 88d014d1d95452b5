import base64
import logging
import mimetypes
from pathlib import Path
from typing import Optional

import httpx

from ..config import OUTPUT_DIR, STATIC_URL_PATH

logger = logging.getLogger(__name__)


class ImageResolutionError(RuntimeError):
    """Raised when an image reference cannot be turned into inline data."""


def to_data_url(raw: bytes, content_type: str = "image/png") -> str:
    b64 = base64.b64encode(raw).decode("utf-8")
    return f"data:{content_type};base64,{b64}"


def split_data_url(data_url: str) -> tuple:
    """Return ``(content_type, raw_bytes)`` for a base64 data URL."""
    header, _, payload = data_url.partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        raise ImageResolutionError("Expected a base64 data URL")
    content_type = header[len("data:"):].split(";", 1)[0] or "image/png"
    return content_type, base64.b64decode(payload)


async def fetch_as_data_url(
    client: httpx.AsyncClient,
    url: str,
    default_content_type: str = "image/png",
) -> str:
    """Download ``url`` and encode the body as a data URL."""
    try:
        response = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise ImageResolutionError(f"Failed to fetch image: {exc}") from exc
    if response.status_code >= 400:
        raise ImageResolutionError(f"Failed to fetch image: {response.status_code}")

    content_type = response.headers.get("content-type", default_content_type).split(";", 1)[0]
    return to_data_url(response.content, content_type)


class HttpImageResolver:
    """Resolves logo image URLs to inline base64 data for edit calls.

    URLs under the static mount point at files this service saved itself and
    are read straight from the output directory.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        static_url_path: str = STATIC_URL_PATH,
        output_dir: Path = OUTPUT_DIR,
    ):
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self.static_prefix = static_url_path.rstrip("/") + "/"
        self.output_dir = Path(output_dir)

    async def resolve(self, url: str) -> str:
        if not url:
            raise ImageResolutionError("Logo has no image URL to resolve")
        if url.startswith("data:"):
            return url
        if url.startswith(self.static_prefix):
            return self._read_local(url[len(self.static_prefix):])
        logger.info(f"Converting image URL to base64 for editing: {url}")
        return await fetch_as_data_url(self.client, url)

    def _read_local(self, name: str) -> str:
        # Only plain file names inside the output directory are served.
        path = self.output_dir / Path(name).name
        if not path.is_file():
            raise ImageResolutionError(f"Saved image not found: {name}")
        content_type = mimetypes.guess_type(path.name)[0] or "image/png"
        return to_data_url(path.read_bytes(), content_type)

    async def aclose(self) -> None:
        await self.client.aclose()
