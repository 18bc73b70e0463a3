from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'gestfiscal_user'
    POSTGRES_PASSWORD: str = 'gestfiscal_pass'
    POSTGRES_DB: str = 'gestfiscal_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Sobrepõe a URL PostgreSQL (ex.: sqlite nos testes)

    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Tenancy
    TENANT_HEADER: str = 'X-Tenant-ID'
    USER_HEADER: str = 'X-User-ID'

    # Assinatura dos documentos fiscais
    FISCAL_HASH_SECRET: str = 'change-this-fiscal-secret-in-production'

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Regras fiscais (Angola)
    IVA_TAXA_PADRAO: Decimal = Decimal("14")
    RETENCAO_TAXA_PADRAO: Decimal = Decimal("6.5")
    PRAZO_VENCIMENTO_DIAS: int = 30
    PRAZO_VENCIMENTO_ND_DIAS: int = 15
    PRAZO_ADIANTAMENTO_DIAS: int = 30
    SERIE_DIGITOS: int = 5
    DIAS_ALERTA_VENCIMENTO: int = 3
    DIAS_PROFORMA_PENDENTE: int = 30

    # Stock
    ESTOQUE_MINIMO_PADRAO: int = 5

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
