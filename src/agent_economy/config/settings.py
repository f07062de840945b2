from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class DBSettings:
    host: str
    port: int
    name: str
    user: str
    password: str

    @property
    def dsn(self) -> str:
        return (
            f"dbname={self.name} user={self.user} password={self.password} "
            f"host={self.host} port={self.port}"
        )


@dataclass(frozen=True)
class OllamaSettings:
    host: str
    llm_model: str
    llm_temperature: float = 0.9
    max_output_tokens: int = 200
    timeout_seconds: int = 15
    max_retries: int = 2
    retry_backoff_seconds: float = 1.5


@dataclass(frozen=True)
class EconomySettings:
    """Monetary rules of the closed economy."""

    platform_fee_rate: float = 0.05
    """Share of every trade removed from circulation as the platform fee."""
    dust_floor: float = 0.5
    """Matched trades at or below this amount are discarded."""
    bankruptcy_floor: float = 1.0
    """Balance below this retires the agent permanently."""
    bailout_floor: float = 5.0
    """Balance below this is reported as a bailout request."""
    warning_floor: float = 10.0
    """Balance below this is reported as a warning."""
    money_decimals: int = 4
    """Decimal places every monetary operation is rounded to."""
    max_supplementary_trades: int = 3
    """Upper bound (exclusive) of random liquidity pairings per epoch."""
    seed_balance: float = 100.0
    surge_gain_pct: float = 30.0
    """Agents more than this many percent above the seed balance are reported as surging."""
    leaderboard_size: int = 10


@dataclass(frozen=True)
class EngineSettings:
    """Controls the concurrent decision phase."""

    per_request_timeout_s: float = 15.0
    """Timeout per individual oracle call."""
    per_epoch_deadline_s: float = 45.0
    """Max wall-clock time for the whole decision phase."""
    max_concurrent_oracle: int = 4
    """Semaphore limit on simultaneous oracle requests."""


@dataclass(frozen=True)
class SchedulerSettings:
    epoch_count: int = 3
    epoch_delay_s: float = 2.0
    seed: int | None = None


@dataclass(frozen=True)
class AppSettings:
    db: DBSettings
    ollama: OllamaSettings
    economy: EconomySettings
    engine: EngineSettings
    scheduler: SchedulerSettings
    output_dir: Path | None

    @staticmethod
    def from_env() -> "AppSettings":
        seed_raw = os.getenv("SIM_SEED", "").strip()
        output_raw = os.getenv("OUTPUT_DIR", "").strip()
        return AppSettings(
            db=DBSettings(
                host=os.getenv("DB_HOST", "localhost"),
                port=int(os.getenv("DB_PORT", "5432")),
                name=os.getenv("DB_NAME", "economy"),
                user=os.getenv("DB_USER", "economy_user"),
                password=os.getenv("DB_PASSWORD", "economy_pass"),
            ),
            ollama=OllamaSettings(
                host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
                llm_model=os.getenv("LLM_MODEL", "qwen2.5:1.5b"),
                llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.9")),
                max_output_tokens=int(os.getenv("LLM_MAX_OUTPUT_TOKENS", "200")),
                timeout_seconds=int(os.getenv("OLLAMA_TIMEOUT_SECONDS", "15")),
                max_retries=int(os.getenv("OLLAMA_MAX_RETRIES", "2")),
                retry_backoff_seconds=float(
                    os.getenv("OLLAMA_RETRY_BACKOFF_SECONDS", "1.5")
                ),
            ),
            economy=EconomySettings(
                platform_fee_rate=float(os.getenv("PLATFORM_FEE_RATE", "0.05")),
                dust_floor=float(os.getenv("DUST_FLOOR", "0.5")),
                bankruptcy_floor=float(os.getenv("BANKRUPTCY_FLOOR", "1.0")),
                bailout_floor=float(os.getenv("BAILOUT_FLOOR", "5.0")),
                warning_floor=float(os.getenv("WARNING_FLOOR", "10.0")),
                money_decimals=int(os.getenv("MONEY_DECIMALS", "4")),
                max_supplementary_trades=int(
                    os.getenv("MAX_SUPPLEMENTARY_TRADES", "3")
                ),
                seed_balance=float(os.getenv("SEED_BALANCE", "100.0")),
                surge_gain_pct=float(os.getenv("SURGE_GAIN_PCT", "30.0")),
                leaderboard_size=int(os.getenv("LEADERBOARD_SIZE", "10")),
            ),
            engine=EngineSettings(
                per_request_timeout_s=float(
                    os.getenv("ORACLE_REQUEST_TIMEOUT_S", "15.0")
                ),
                per_epoch_deadline_s=float(
                    os.getenv("EPOCH_DEADLINE_S", "45.0")
                ),
                max_concurrent_oracle=int(os.getenv("MAX_CONCURRENT_ORACLE", "4")),
            ),
            scheduler=SchedulerSettings(
                epoch_count=int(os.getenv("EPOCH_COUNT", "3")),
                epoch_delay_s=float(os.getenv("EPOCH_DELAY_S", "2.0")),
                seed=int(seed_raw) if seed_raw else None,
            ),
            output_dir=Path(output_raw) if output_raw else None,
        )
