from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    portal_base_url: str = os.getenv(
        "GRADEVUE_PORTAL_BASE_URL",
        "https://useful-fawnia-jay3332.koyeb.app/req?path=",
    )
    request_timeout: float = float(os.getenv("GRADEVUE_REQUEST_TIMEOUT", "15"))

    district_lookup_url: str = os.getenv(
        "GRADEVUE_DISTRICT_LOOKUP_URL",
        "https://support.edupoint.com/Service/HDInfoCommunication.asmx",
    )
    district_lookup_key: str = os.getenv(
        "GRADEVUE_DISTRICT_LOOKUP_KEY",
        "5E4B7859-B805-474B-A833-FDB15D205D40",
    )

    mcps_hosts: tuple[str, ...] = _split_csv(
        os.getenv("GRADEVUE_MCPS_HOSTS", "md-mcps-psv.edupoint.com")
    )

    log_level: str = os.getenv("GRADEVUE_LOG_LEVEL", "INFO").upper()

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )


settings = Settings()
