"""
Runtime settings for the outer surfaces (API server, CLI).

The reconciliation core never reads these: its thresholds are explicit
function parameters. Settings come from environment variables, which the
entry points may populate from a ``.env`` file.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from . import __version__


class Settings(BaseModel):
    log_level: str = "INFO"
    max_payload_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    app_version: str = __version__

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            max_payload_bytes=int(os.environ.get("MAX_PAYLOAD_BYTES", 5 * 1024 * 1024)),
            app_version=os.environ.get("APP_VERSION", __version__),
        )
