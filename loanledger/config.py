"""Configuration management for the repayment engine."""

from __future__ import annotations
from dataclasses import dataclass

from .units.guaranteed_loan import DEFAULT_REFERENCE_PREFIX

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("standard", "json")


@dataclass
class EngineConfig:
    """
    RepaymentEngine configuration.

    Attributes:
        ledger_name: Name of the ledger the engine creates when none is given
        currency: Settlement currency every loan must use
        max_retries: Extra attempts after a stale-state rejection
        log_level: Root log level, applied by configure_logging(); the engine
            itself never reconfigures logging
        log_format: "standard" or "json"
        reference_prefix: Prefix of generated payment references
        verbose: Print each transaction from the engine-created ledger
    """

    ledger_name: str = "loans"
    currency: str = "USD"
    max_retries: int = 3
    log_level: str = "INFO"
    log_format: str = "standard"
    reference_prefix: str = DEFAULT_REFERENCE_PREFIX
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.ledger_name or not self.ledger_name.strip():
            raise ValueError("ledger_name cannot be empty")
        if not self.currency or not self.currency.strip():
            raise ValueError("currency cannot be empty")
        if self.max_retries < 0:
            raise ValueError(f"max_retries cannot be negative, got {self.max_retries}")
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}, got {self.log_level!r}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {self.log_format!r}")
        if not self.reference_prefix or not self.reference_prefix.strip():
            raise ValueError("reference_prefix cannot be empty")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create config from environment variables."""
        import os

        return cls(
            ledger_name=os.getenv("LOANLEDGER_NAME", "loans"),
            currency=os.getenv("LOANLEDGER_CURRENCY", "USD"),
            max_retries=int(os.getenv("LOANLEDGER_MAX_RETRIES", "3")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
            reference_prefix=os.getenv("LOANLEDGER_REFERENCE_PREFIX", DEFAULT_REFERENCE_PREFIX),
            verbose=os.getenv("LOANLEDGER_VERBOSE", "false").lower() == "true",
        )

    def configure_logging(self) -> None:
        """Apply log_level and log_format through setup_logging()."""
        from .logging import setup_logging

        setup_logging(self.log_level, self.log_format)
