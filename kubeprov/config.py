"""Configuration management for the kubeprov application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Process-wide settings with sensible defaults."""

    # Logging
    LOG_LEVEL: str = os.getenv("KUBEPROV_LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "KUBEPROV_LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Audit logs land here unless the provisioning config overrides it
    LOG_DIR: str = os.getenv("KUBEPROV_LOG_DIR", "/tmp")

    # Explicit provisioning config file
    CONFIG_PATH: str = os.getenv("KUBEPROV_CONFIG", "")

    # Timeouts (in seconds)
    COMMAND_TIMEOUT: int = int(os.getenv("KUBEPROV_COMMAND_TIMEOUT", "1800"))  # 30 minutes
    HTTP_TIMEOUT: int = int(os.getenv("KUBEPROV_HTTP_TIMEOUT", "60"))

    # Security
    REDACT_KEYS: tuple = ("--token", "--discovery-token-ca-cert-hash", "--certificate-key")
