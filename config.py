import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Catalog API settings
    api_base_url: str = os.getenv("LIBRARY_API_URL", "http://localhost:5000/api")
    api_timeout: float = float(os.getenv("LIBRARY_API_TIMEOUT", "10"))
    api_connect_timeout: float = float(os.getenv("LIBRARY_API_CONNECT_TIMEOUT", "5"))

    # Session storage
    session_file: str = os.getenv(
        "LIBRARY_SESSION_FILE",
        str(Path.home() / ".library-cli" / "session.json"),
    )
    storage_namespace: str = os.getenv("LIBRARY_STORAGE_NAMESPACE", "library-ui")
    # Drop JWTs whose exp claim has passed before issuing a protected call
    check_token_expiry: bool = _env_flag("LIBRARY_CHECK_TOKEN_EXPIRY", "True")

    # Genre hidden from selection lists
    hidden_genre_name: str = os.getenv("LIBRARY_HIDDEN_GENRE", "unknown")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Catalog")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING").upper()


settings = Settings()
