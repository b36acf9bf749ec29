"""Configuration handling for the chatgate gateway."""

import yaml
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"

upstream_error_logger = logging.getLogger("upstream_errors")
upstream_error_logger.setLevel(logging.INFO)

log_dir = Path(__file__).parent.parent.parent / "logs"
os.makedirs(log_dir, exist_ok=True)

upstream_error_log_file = log_dir / "upstream_errors.log"
file_handler = logging.FileHandler(str(upstream_error_log_file), mode="a")
file_handler.setFormatter(
    logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
)

upstream_error_logger.addHandler(file_handler)
upstream_error_logger.propagate = True

load_dotenv()


class ServerConfig(BaseModel):
    """Resolved server-side settings for one gateway invocation."""
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    openai_api_key: str = ""
    chat_base_api: str = ""


def default_config() -> Dict[str, Any]:
    return {
        "openai": {"base_url": DEFAULT_OPENAI_BASE_URL, "api_key": ""},
        "chat_base_api": "",
    }


def load_config() -> Dict[str, Any]:
    """
    Load configuration from config.yaml file.
    Returns a dictionary containing the configuration.
    """
    try:
        config_path = Path(__file__).parent.parent.parent / "config.yaml"
        config_yaml = config_path.read_text()
        config = yaml.safe_load(config_yaml)
        if not isinstance(config, dict):
            raise ValueError("config.yaml must contain a mapping")
        logger.info("Successfully loaded configuration from config.yaml")
        return config
    except Exception as e:
        logger.error(f"Error loading config.yaml: {str(e)}")
        return default_config()


def get_server_config(config: Optional[Dict[str, Any]] = None) -> ServerConfig:
    """
    Build the server settings, letting environment variables override config.yaml.

    The file and environment are read on every call so that a running gateway
    picks up changes without a restart.
    """
    if config is None:
        config = load_config()

    openai_section = config.get("openai") or {}

    base_url = os.environ.get("OPENAI_PROXY_URL") or openai_section.get("base_url")
    if not base_url:
        logger.warning("OpenAI base URL not set, using default value")
        base_url = DEFAULT_OPENAI_BASE_URL

    return ServerConfig(
        openai_base_url=base_url,
        openai_api_key=os.environ.get("OPENAI_API_KEY") or openai_section.get("api_key") or "",
        chat_base_api=os.environ.get("CHAT_BASE_API") or config.get("chat_base_api") or "",
    )
