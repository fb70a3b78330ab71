# flowprobe/utils/config.py
from __future__ import annotations

import functools
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------- Enums ----------

class BrowserType(str, Enum):
    chromium = "chromium"
    firefox = "firefox"
    webkit = "webkit"


class ScreenshotFormat(str, Enum):
    png = "png"
    jpeg = "jpeg"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


# ---------- Settings ----------

class Settings(BaseSettings):
    """
    Central configuration for chat-flow-probe.

    Values load in this order of precedence:
      1) Environment variables
      2) .env file in project root
      3) Defaults below

    List fields (INVALID_NAMES, BROWSER_ARGS, ...) are read from env as JSON arrays.
    """

    # ---- Browser configuration ----
    HEADLESS: bool = Field(default=False, description="Headed by default so the QR code can be scanned")
    BROWSER_TYPE: BrowserType = Field(default=BrowserType.chromium, description="Playwright browser")
    VIEWPORT_WIDTH: int = Field(default=1280, ge=320, le=7680)
    VIEWPORT_HEIGHT: int = Field(default=720, ge=320, le=4320)
    SLOW_MO: int = Field(default=0, ge=0, description="Slow down actions (ms) for debugging")
    USER_AGENT: Optional[str] = Field(default=DEFAULT_USER_AGENT)
    ACCEPT_LANGUAGE: str = Field(default="en-US,en;q=0.9")
    BROWSER_ARGS: List[str] = Field(
        default_factory=lambda: [
            "--no-first-run",
            "--disable-blink-features=AutomationControlled",
        ]
    )
    USER_DATA_DIR: Path = Field(default=Path("./user_data"), description="Persistent profile (keeps the chat session)")
    APP_URL: str = Field(default="https://web.whatsapp.com")
    DEFAULT_TIMEOUT: int = Field(default=60000, ge=1000)
    NAVIGATION_TIMEOUT: int = Field(default=60000, ge=1000)

    # ---- Diagnostic capture ----
    SCREENSHOT_DIR: Path = Field(default=Path("./screenshots"))
    SCREENSHOT_FORMAT: ScreenshotFormat = Field(default=ScreenshotFormat.png)
    SCREENSHOT_QUALITY: int = Field(default=90, ge=1, le=100)
    FULL_PAGE_SCREENSHOT: bool = Field(default=True)

    # ---- Resolution / actionability ----
    PROBE_TIMEOUT_MS: int = Field(default=10000, ge=1, description="Default wait per locator descriptor")
    ACTIONABLE_POLL_INTERVAL_MS: int = Field(default=1000, ge=0)
    ACTIONABLE_MAX_ATTEMPTS: int = Field(default=30, ge=1)
    POST_ACTION_DELAY_MS: int = Field(default=1000, ge=0)
    CATALOG_FILE: Optional[Path] = Field(default=None, description="YAML file overriding default locator sets")

    # ---- Phase timeouts (ms) ----
    QR_SCAN_TIMEOUT: int = Field(default=120000, ge=0)
    LOGIN_READY_TIMEOUT: int = Field(default=30000, ge=0)
    PAGE_SETTLE_MS: int = Field(default=3000, ge=0)
    MESSAGE_DELAY: int = Field(default=3000, ge=0)
    ERROR_DELAY: int = Field(default=5000, ge=0)
    RECEIPT_UPLOAD_WAIT: int = Field(default=15000, ge=0)
    MANUAL_UPLOAD_WAIT: int = Field(default=60000, ge=0)
    PROGRESS_LOG_INTERVAL: int = Field(default=5000, ge=1)
    KEEP_OPEN_MS: int = Field(default=10000, ge=0, description="Inspection window after a local run")

    # ---- Scenario parameters ----
    CONTACT_NUMBER: Optional[str] = None
    TRIGGER_MESSAGE: Optional[str] = None
    USER_NAME: Optional[str] = None
    INVALID_NAMES: List[str] = Field(default_factory=lambda: ["123", "Hello123", "✅✅✅"])
    UPLOAD_FILE: Optional[Path] = None
    INVALID_UPLOAD_MESSAGES: List[str] = Field(default_factory=lambda: ["dsvdsvefew", "23432@@@@@"])
    ACTIVATION_MESSAGE: str = Field(default="Hello")
    AGENT_MESSAGE: str = Field(
        default="Hello, I need assistance with my recent transaction. Can you please help me?"
    )

    # ---- Policy ----
    AUTO_CONFIRM: bool = Field(default=False, description="Skip operator prompts (CI / unattended runs)")
    STRICT_INDIRECT_VALIDATION: bool = Field(
        default=False, description="Fail when only the low-confidence 'conversation continued' signal is seen"
    )
    CI: bool = Field(default=False)

    # ---- Logging ----
    LOG_LEVEL: LogLevel = Field(default=LogLevel.INFO)
    LOG_TO_FILE: bool = Field(default=False)
    LOG_FILE: Path = Field(default=Path("./flowprobe.log"))
    COLORIZED_OUTPUT: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore unknown envs to keep things flexible
    )

    @field_validator("USER_DATA_DIR", "SCREENSHOT_DIR", "LOG_FILE", mode="after")
    @classmethod
    def _absolutize(cls, v: Path):
        return v if v.is_absolute() else Path.cwd() / v

    @field_validator("CATALOG_FILE", "UPLOAD_FILE", mode="after")
    @classmethod
    def _absolutize_optional(cls, v: Optional[Path]):
        if v is None:
            return v
        return v if v.is_absolute() else Path.cwd() / v

    @field_validator("CONTACT_NUMBER", "TRIGGER_MESSAGE", "USER_NAME", mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def ensure_dirs(self) -> None:
        """Create required directories (idempotent)."""
        for p in {self.SCREENSHOT_DIR, self.LOG_FILE.parent}:
            p.mkdir(parents=True, exist_ok=True)

    # Convenience: Playwright launch_persistent_context kwargs
    def playwright_context_kwargs(self) -> dict:
        kwargs = {
            "headless": self.HEADLESS,
            "slow_mo": self.SLOW_MO,
            "viewport": {"width": self.VIEWPORT_WIDTH, "height": self.VIEWPORT_HEIGHT},
            "extra_http_headers": {"Accept-Language": self.ACCEPT_LANGUAGE},
        }
        if self.BROWSER_ARGS:
            kwargs["args"] = list(self.BROWSER_ARGS)
        if self.USER_AGENT:
            kwargs["user_agent"] = self.USER_AGENT
        return kwargs


# --------- Public accessor (memoized) ---------

@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache settings once per process.
    Call `get_settings.cache_clear()` if you need to reload after changing env.
    """
    s = Settings()
    s.ensure_dirs()
    return s
