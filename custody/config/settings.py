from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    guardian_a: str = Field(default="guardian_a", validation_alias="CUSTODY_GUARDIAN_A")
    guardian_b: str = Field(default="guardian_b", validation_alias="CUSTODY_GUARDIAN_B")
    max_run_length: int = Field(default=4, validation_alias="CUSTODY_MAX_RUN_LENGTH")
    default_block_length: int = Field(default=3, validation_alias="CUSTODY_DEFAULT_BLOCK_LENGTH")
    fairness_window_days: int = Field(
        default=14,
        validation_alias="CUSTODY_FAIRNESS_WINDOW_DAYS",
        description="Size of the fixed accounting window used by the fairness pass",
    )
    fairness_window_min: int = Field(default=6, validation_alias="CUSTODY_FAIRNESS_WINDOW_MIN")
    fairness_window_max: int = Field(default=8, validation_alias="CUSTODY_FAIRNESS_WINDOW_MAX")
    optimizer_url: str = Field(
        default="",
        validation_alias="CUSTODY_OPTIMIZER_URL",
        description="Proposal optimizer endpoint (empty disables the optimizer pass)",
    )
    optimizer_timeout_seconds: float = Field(
        default=8.0,
        validation_alias="CUSTODY_OPTIMIZER_TIMEOUT_SECONDS",
        description="Upper bound on a single optimizer round trip",
    )
    proposal_ttl_days: int = Field(default=7, validation_alias="CUSTODY_PROPOSAL_TTL_DAYS")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str = Field(default="", validation_alias="CUSTODY_LOG_FILE")
    log_json: bool = Field(default=False, validation_alias="CUSTODY_LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("max_run_length", "default_block_length")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Run and block lengths must allow at least a two-night stay."""
        if value < 2:
            raise ValueError(f"Run and block lengths must be >= 2, got {value}")
        return value

    @field_validator("optimizer_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        """Validate optimizer timeout is positive."""
        if value <= 0:
            logger.warning(f"Non-positive CUSTODY_OPTIMIZER_TIMEOUT_SECONDS ({value}). Defaulting to 8.0.")
            return 8.0
        return value


settings = Settings()
