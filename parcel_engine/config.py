"""
Runtime configuration read from environment variables.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    environment: str = "dev"
    port: int = 8080
    api_base_url: str = "http://localhost:8080/api"
    api_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            environment=env.get("ENVIRONMENT", "dev"),
            port=int(env.get("PORT", 8080)),
            api_base_url=env.get("PARCEL_API_BASE_URL", "http://localhost:8080/api").rstrip("/"),
            api_timeout=float(env.get("PARCEL_API_TIMEOUT", 10)),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
