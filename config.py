from pydantic import PrivateAttr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Provident Fund Workflow API"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3005

    database_url: str = "sqlite+aiosqlite:///./provident_fund.db"
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Fund policy
    min_loan_amount: int = 5000
    max_repayment_months: int = 24
    loan_cap: float = 0.5  # share of the vested balance
    vesting_cliff_months: int = 24
    min_withdrawal_amount: int = 5000
    min_loan_approvers: int = 2
    required_document_count: int = 1

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    _is_sqlite: bool = PrivateAttr(default=False)
    _is_postgresql: bool = PrivateAttr(default=False)

    def model_post_init(self, __context: object) -> None:
        _scheme = self.database_url.split(":")[0].lower()
        object.__setattr__(self, "_is_sqlite", "sqlite" in _scheme)
        object.__setattr__(self, "_is_postgresql", "postgresql" in _scheme)

    @property
    def is_sqlite(self) -> bool:
        return self._is_sqlite

    @property
    def is_postgresql(self) -> bool:
        return self._is_postgresql


settings = Settings()
