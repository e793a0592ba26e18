"""
Backend configuration module for the Community Problem Reporter.
Loads the backend-as-a-service credentials and tunables from the environment
and builds the client handle that is injected into the application.
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

from services.supabase import SupabaseClient

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

SETUP_INSTRUCTIONS = [
    "Create a Supabase project and copy its API URL and anon key.",
    "Set SUPABASE_URL and SUPABASE_ANON_KEY in the environment or in a .env file.",
    "Create the 'problems' and 'user_profiles' tables and the "
    "'increment_votes' / 'add_user_points' functions.",
    "Create a public storage bucket named 'problem-images'.",
    "Restart the service.",
]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class Settings:
    """Runtime settings; delays are in seconds."""
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    storage_bucket: str = "problem-images"
    demo_data: bool = True
    persist_reports: bool = False
    fetch_limit: int = 50
    analysis_delay: float = 1.0
    submit_delay: float = 2.0
    reset_delay: float = 3.0
    submit_interval: float = 2.0
    geolocation_timeout: float = 10.0
    password_reset_redirect: str = "http://localhost:3000/reset-password"

    @property
    def is_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def missing(self) -> List[str]:
        names = []
        if not self.supabase_url:
            names.append("SUPABASE_URL")
        if not self.supabase_anon_key:
            names.append("SUPABASE_ANON_KEY")
        return names


def load_settings() -> Settings:
    """
    Build Settings from environment variables.

    Missing credentials do not raise: the application falls back to setup mode.

    Returns:
        Settings: populated settings
    """
    settings = Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY"),
        storage_bucket=os.getenv("CIVIC_STORAGE_BUCKET", "problem-images"),
        demo_data=_env_bool("CIVIC_DEMO_DATA", True),
        persist_reports=_env_bool("CIVIC_PERSIST_REPORTS", False),
        fetch_limit=int(os.getenv("CIVIC_FETCH_LIMIT", 50)),
        analysis_delay=_env_float("CIVIC_ANALYSIS_DELAY", 1.0),
        submit_delay=_env_float("CIVIC_SUBMIT_DELAY", 2.0),
        reset_delay=_env_float("CIVIC_RESET_DELAY", 3.0),
        submit_interval=_env_float("CIVIC_SUBMIT_INTERVAL", 2.0),
        geolocation_timeout=_env_float("CIVIC_GEOLOCATION_TIMEOUT", 10.0),
        password_reset_redirect=os.getenv(
            "CIVIC_PASSWORD_RESET_REDIRECT", "http://localhost:3000/reset-password"
        ),
    )

    if not settings.is_configured:
        logger.error("Missing environment variables: %s", ", ".join(settings.missing))
        logger.error("Service will start in setup mode until they are provided.")

    return settings


def create_backend(settings: Settings) -> Optional[SupabaseClient]:
    """
    Construct the backend-as-a-service client once for the whole process.

    Args:
        settings: Loaded settings

    Returns:
        SupabaseClient, or None when the credentials are missing
    """
    if not settings.is_configured:
        return None
    return SupabaseClient(
        settings.supabase_url,
        settings.supabase_anon_key,
        bucket=settings.storage_bucket,
    )
