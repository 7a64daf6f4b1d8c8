"""Environment-driven settings for a stage invocation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stance_pipeline.shared.db.connection import KEY_VARS, URL_VARS, SupabaseConfig, normalize_url
from stance_pipeline.shared.utils.config_validator import (
    get_env_or_default,
    validate_float_env,
    validate_int_env,
)
from stance_pipeline.shared.utils.env import first_env

from .http import DEFAULT_TIMEOUT_SECONDS
from .stages import StageDefinition


@dataclass
class StageSettings:
    """Runtime settings resolved once per invocation.

    Attributes:
        cron_secret: Expected ``x-cron-secret`` value; empty rejects every call
        project_url: Project base URL (db classification, REST, metrics)
        service_key: Service role key for PostgREST access
        budget_ms: Compute+db budget before ``should_stop()`` turns true
        concurrency: Maximum in-flight sub-tasks
        timeout_seconds: Outbound HTTP timeout
    """

    cron_secret: str = ""
    project_url: str = ""
    service_key: str = ""
    budget_ms: int = 2000
    concurrency: int = 4
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        self.project_url = normalize_url(self.project_url)

    @classmethod
    def from_env(cls, definition: StageDefinition) -> "StageSettings":
        """Load settings for ``definition`` from the environment.

        Raises:
            ConfigurationError: If a budget/concurrency/timeout override is
                not a valid number or is below its minimum.
        """
        return cls(
            cron_secret=get_env_or_default("CRON_SECRET", ""),
            project_url=first_env(*URL_VARS) or "",
            service_key=first_env(*KEY_VARS) or "",
            budget_ms=validate_int_env(
                definition.budget_env, default=definition.default_budget_ms, min_value=1
            ),
            concurrency=validate_int_env(
                definition.concurrency_env, default=definition.default_concurrency, min_value=1
            ),
            timeout_seconds=validate_float_env(
                "HTTP_TIMEOUT_SECONDS", default=DEFAULT_TIMEOUT_SECONDS, min_value=0.1
            ),
        )

    @staticmethod
    def secret_from_env() -> str:
        """Read only the shared secret, so auth runs before other settings are parsed."""
        return get_env_or_default("CRON_SECRET", "")

    def supabase_config(self) -> Optional[SupabaseConfig]:
        if not self.project_url or not self.service_key:
            return None
        return SupabaseConfig(url=self.project_url, key=self.service_key)
