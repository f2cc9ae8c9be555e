from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

DEFAULT_RPC_URLS = ",".join([
    "https://eth.llamarpc.com",
    "https://rpc.ankr.com/eth",
    "https://ethereum-rpc.publicnode.com",
])


def _split_addresses(raw: str) -> frozenset[str]:
    return frozenset(a.strip().lower() for a in raw.split(",") if a.strip())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = ""

    # Digital Key NFT on Ethereum mainnet
    NFT_CONTRACT_ADDRESS: str = "0x217ddEad61a42369A266F1Fb754EB5d3EBadc88a"
    CHAIN_ID: int = 1

    # Tried in order, first well-formed answer wins
    ETHEREUM_RPC_URLS: str = DEFAULT_RPC_URLS
    RPC_TIMEOUT_SECONDS: float = 10.0

    # Operator allow-lists (comma separated)
    ADMIN_WALLET_ADDRESSES: str = ""
    NFT_FALLBACK_WALLET_ADDRESSES: str = ""

    WALLET_EMAIL_DOMAIN: str = "wallet.keygate"

    NONCE_TTL_SECONDS: int = 300
    NONCE_RETENTION_SECONDS: int = 3600
    LEGACY_AUTH_ENABLED: bool = True
    LEGACY_MESSAGE_WINDOW_SECONDS: int = 300
    LOGIN_TOKEN_TTL_SECONDS: int = 600

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v):
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @property
    def rpc_urls(self) -> list[str]:
        return [u.strip() for u in self.ETHEREUM_RPC_URLS.split(",") if u.strip()]

    @property
    def admin_wallets(self) -> frozenset[str]:
        return _split_addresses(self.ADMIN_WALLET_ADDRESSES)

    @property
    def fallback_wallets(self) -> frozenset[str]:
        """Static list trusted when every RPC endpoint is down.

        Falls back to the admin list when no dedicated list is configured.
        """
        return _split_addresses(self.NFT_FALLBACK_WALLET_ADDRESSES) or self.admin_wallets

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()] or ["http://localhost:3000"]

settings = Settings()
