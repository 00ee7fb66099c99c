# souk/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    AUTH_SECRET_KEY: str = "change-me"
    AUTH_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    AUTH_ADMIN_LOGIN: str = "admin"
    AUTH_ADMIN_PASSWORD: str = "admin"

    DATABASE_URL: str = "sqlite+aiosqlite:///./souk.db"

    # Перевозчики
    CARRIER_TIMEOUT: float = 20.0       # таймаут одного HTTP-вызова, сек
    CARRIER_CONCURRENCY: int = 4        # параллельных опросов статусов
    CARRIER_CONFIG_TTL: int = 300       # время жизни кэша конфигураций, сек

    # Google Sheets (OAuth refresh token)
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REFRESH_TOKEN: str = ""
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_SHEETS_API_URL: str = "https://sheets.googleapis.com/v4/spreadsheets"

    # Twilio
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""
    TWILIO_WHATSAPP_NUMBER: str = ""
    TWILIO_API_URL: str = "https://api.twilio.com/2010-04-01"
    ENABLE_SMS: bool = False
    ENABLE_WHATSAPP: bool = False

    LOG_DIR: str = "log"
    LOG_PRINT: str = "1"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
