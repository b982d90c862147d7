import logging
from typing import Any, ClassVar, FrozenSet

from pydantic_settings import BaseSettings, SettingsConfigDict

_logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Service
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    # dev|test|staging|prod; anything outside _DEV_ENVS gets the strict guardrails.
    ENV: str = "dev"
    # Local visualizer dev servers (any port, localhost only).
    CORS_ALLOW_ORIGIN_REGEX: str = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    # Per-client fixed-window throttling of HTTP routes
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_REQUESTS_PER_WINDOW: int = 120

    # Prometheus /metrics
    METRICS_ENABLED: bool = True

    # --- Simulator ---
    # Initial system state at process start (operators flip it at runtime).
    SIMULATOR_INITIAL_OFFLINE: bool = False
    SIMULATOR_INITIAL_LATENCY_MS: int = 0

    # Multiplier applied to every sequence player wait (ticks and fallback offsets).
    # 1.0 = narrative pacing; smaller values speed up demos and smoke tests.
    SIMULATOR_TIME_SCALE: float = 1.0

    # Per-observer queue bound and concurrent observer cap (0 = unlimited).
    SIMULATOR_OBSERVER_QUEUE_MAX: int = 256
    SIMULATOR_MAX_OBSERVERS: int = 50

    # Clearance
    CLEARANCE_VERIFY_URL_BASE: str = "https://gra.gov.gh/verify/"

    _DEV_ENVS: ClassVar[FrozenSet[str]] = frozenset({"dev", "development", "test", "testing"})

    def model_post_init(self, __context: Any) -> None:
        self._check_simulator_ranges()
        self._check_dev_only_knobs()

    def _check_simulator_ranges(self) -> None:
        if not self.SIMULATOR_TIME_SCALE > 0:
            raise RuntimeError(
                f"SIMULATOR_TIME_SCALE must be > 0. Got {self.SIMULATOR_TIME_SCALE!r}."
            )
        if self.SIMULATOR_INITIAL_LATENCY_MS < 0:
            raise RuntimeError(
                "SIMULATOR_INITIAL_LATENCY_MS must be >= 0. "
                f"Got {self.SIMULATOR_INITIAL_LATENCY_MS!r}."
            )

    def _check_dev_only_knobs(self) -> None:
        """Fail fast when debug/time-warp knobs leak outside dev/test."""
        env = (self.ENV or "").strip().lower()
        if env in self._DEV_ENVS:
            return

        offending = [
            name
            for name, active in (
                ("DEBUG", self.DEBUG),
                ("SIMULATOR_TIME_SCALE", self.SIMULATOR_TIME_SCALE != 1.0),
            )
            if active
        ]
        if offending:
            raise RuntimeError(
                "Refusing to start with dev-only overrides outside dev/test: "
                f"{', '.join(offending)}. Got ENV={self.ENV!r}."
            )

        _logger.info("settings.loaded env=%s", env)


settings = Settings()
