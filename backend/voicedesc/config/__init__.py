"""
Application configuration and settings
"""

import os
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from .models import (
    LLMProviderType,
    ModelConfig,
    PIPELINE_MODELS,
    get_active_provider,
    get_model_config,
    get_model_name,
)
from .settings import PipelineSettings

# Base directories
PACKAGE_DIR = Path(__file__).parent.parent
BACKEND_DIR = PACKAGE_DIR.parent
JOB_DATA_DIR = Path(os.getenv("VOICEDESC_JOB_DATA_DIR", str(BACKEND_DIR / "job_data")))

# LLM Provider settings
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "").lower() or None  # "gemini" or "ollama"
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")
JSON_LOGS = os.getenv("JSON_LOGS", "false").lower() == "true"

# Accepted media kinds
ALLOWED_MEDIA_KINDS = ("video", "image")

__all__ = [
    "LLMProviderType",
    "ModelConfig",
    "PIPELINE_MODELS",
    "get_active_provider",
    "get_model_config",
    "get_model_name",
    "PipelineSettings",
    "PACKAGE_DIR",
    "BACKEND_DIR",
    "JOB_DATA_DIR",
    "LLM_PROVIDER",
    "OLLAMA_HOST",
    "GEMINI_API_KEY",
    "LOG_LEVEL",
    "LOG_FILE",
    "JSON_LOGS",
    "ALLOWED_MEDIA_KINDS",
]
