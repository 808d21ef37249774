"""MintGate — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from mintgate.policy.schema import MintWindowBounds, PolicyLimits


class MintGateSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_prefix": "MINTGATE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # ── Issuance Policy ────────────────────────────────────────
    max_supply: int = 1_000_000_000
    mint_limit_per_tx: int = 1_000_000
    daily_mint_multiplier: int = 10
    transfer_limit_per_tx: int = 10_000_000
    day_length_seconds: int = 86_400

    # ── Minting Window (epoch seconds) ─────────────────────────
    mint_start_time: int = 1_767_225_600  # 2026-01-01T00:00:00Z
    mint_end_time: int = 1_893_456_000  # 2030-01-01T00:00:00Z

    # ── Asset Identity ─────────────────────────────────────────
    asset_id: str = "MGT"
    contract_address: str = "0x" + "c0" * 20
    admin_principal: str = "admin"

    # ── Audit Trail ────────────────────────────────────────────
    audit_database_url: str = ""

    # ── HTTP API ───────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_token: str = ""  # shared bearer token; empty disables the check

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def policy_limits(self) -> PolicyLimits:
        return PolicyLimits(
            max_supply=self.max_supply,
            mint_limit_per_tx=self.mint_limit_per_tx,
            daily_mint_multiplier=self.daily_mint_multiplier,
            transfer_limit_per_tx=self.transfer_limit_per_tx,
            day_length=self.day_length_seconds,
        )

    @property
    def mint_window(self) -> MintWindowBounds:
        return MintWindowBounds(start_time=self.mint_start_time, end_time=self.mint_end_time)


settings = MintGateSettings()
