import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from a local .env file if present.
load_dotenv()

# Base directory for package assets.
BASE_DIR = Path(__file__).resolve().parent

# Where generated logo files will be written when the OpenAI provider is used.
OUTPUT_DIR = Path(os.getenv("LOGO_OUTPUT_DIR", BASE_DIR / "generated_logos"))
OUTPUT_PREFIX = os.getenv("LOGO_OUTPUT_PREFIX", "logo")
STATIC_URL_PATH = os.getenv("LOGO_STATIC_URL_PATH", "/logos")

# Image provider selection: "flux" (Flux Kontext Pro) or "openai".
IMAGE_PROVIDER = os.getenv("LOGO_IMAGE_PROVIDER", "flux").lower()

# Flux Kontext Pro settings.
FLUX_API_KEY = os.getenv("FLUX_KONTEXT_PRO_API_KEY", "")
FLUX_BASE_URL = os.getenv("FLUX_BASE_URL", "https://api.bfl.ai")
FLUX_MAX_RETRIES = int(os.getenv("FLUX_MAX_RETRIES", "3"))
FLUX_POLL_INTERVAL = float(os.getenv("FLUX_POLL_INTERVAL", "2.0"))
FLUX_TIMEOUT = float(os.getenv("FLUX_TIMEOUT", "300"))

# OpenAI model choices can be overridden via environment variables if desired.
IMAGE_MODEL = os.getenv("LOGO_IMAGE_MODEL", "gpt-image-1")
COMMAND_MODEL = os.getenv("LOGO_COMMAND_MODEL", "gpt-4.1-mini")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# Image generation defaults.
IMAGE_SIZE = os.getenv("LOGO_IMAGE_SIZE", "1024x1024")
IMAGE_BACKGROUND = os.getenv("LOGO_IMAGE_BACKGROUND", "transparent")

# Ask the language model to refine parsed edit commands unless explicitly disabled.
ANALYZE_COMMANDS = os.getenv("LOGO_ANALYZE_COMMANDS", "true").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def ensure_output_dir() -> None:
    """Create the output directory if it does not already exist."""
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
