from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv, find_dotenv
from pydantic import BaseModel


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    elastic_url: str = "http://localhost:9200"
    elastic_index: str = "nested-demo"
    elastic_username: Optional[str] = None
    elastic_password: Optional[str] = None
    verify_certs: bool = True
    # transport policy handed to the client
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_on_timeout: bool = True
    log_level: str = "INFO"


def load_settings() -> Settings:
    """
    Read settings from the environment (and a .env file if one is found).
    """
    load_dotenv(find_dotenv(usecwd=True), override=True)
    return Settings(
        elastic_url=os.getenv("ELASTIC_URL", "http://localhost:9200"),
        elastic_index=os.getenv("ELASTIC_INDEX", "nested-demo"),
        elastic_username=os.getenv("ELASTIC_USERNAME") or None,
        elastic_password=os.getenv("ELASTIC_PASSWORD") or None,
        verify_certs=_flag("ELASTIC_VERIFY_CERTS", "true"),
        request_timeout=float(os.getenv("ELASTIC_REQUEST_TIMEOUT", "30")),
        max_retries=int(os.getenv("ELASTIC_MAX_RETRIES", "3")),
        retry_on_timeout=_flag("ELASTIC_RETRY_ON_TIMEOUT", "true"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # the transport logs every request at INFO
    logging.getLogger("elastic_transport").setLevel(logging.WARNING)
