from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VALIDAI_", env_file=".env", extra="ignore")

    ENV: str = Field(default="dev")
    DB_URL: str = Field(default="sqlite:///./validai.db")
    LOG_DIR: str = Field(default="logs")
    EXPORT_DIR: str = Field(default="./exports")

    # 模型网关（OpenAI 兼容接口）
    AI_BASE_URL: str = Field(default="https://api.openai.com/v1")
    AI_API_KEY: str | None = Field(default=None)
    AI_MODEL: str = Field(default="gpt-4o-mini")
    AI_TEMPERATURE: float = Field(default=0.7)
    AI_MAX_TOKENS: int = Field(default=4096)
    AI_TIMEOUT: float = Field(default=120.0)

    # 重试策略：额外重试次数、基础延迟（秒）、退避倍数
    AI_MAX_RETRIES: int = Field(default=2, ge=0)
    AI_RETRY_BASE_DELAY: float = Field(default=1.0, ge=0)
    AI_RETRY_MULTIPLIER: float = Field(default=1.5, ge=1)

    # 执行模拟器
    SIM_PASS_PROBABILITY: float = Field(default=0.7, ge=0, le=1)
    SIM_PASS_EVIDENCE_PROBABILITY: float = Field(default=0.2, ge=0, le=1)
    SIM_STEP_DELAY: float = Field(default=0.8, ge=0)
    SIM_CASE_DELAY: float = Field(default=0.5, ge=0)
    SIM_SETUP_DELAY: float = Field(default=1.0, ge=0)
    SIM_SEED: int | None = Field(default=None)

settings = Settings()
