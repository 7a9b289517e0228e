from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="ZATCA_", extra="ignore")

    # Invoice subtype prefix that adds the CA signature (tag 9) to the QR payload
    SIMPLIFIED_SUBTYPE_PREFIX: str = "02"

    # Local time by default, matching the Fatoora reference signer
    SIGNING_TIME_UTC: bool = False

    # QR tags 6/7: raw digest/signature bytes, or their base64 text (portal style)
    QR_DIGEST_ENCODING: Literal["raw", "base64"] = "raw"

    # QR tag 8: X9.62 uncompressed point, or SubjectPublicKeyInfo DER
    QR_PUBLIC_KEY_FORMAT: Literal["point", "spki"] = "point"

    # lxml parser limits
    XML_HUGE_TREE: bool = False

    LOG_LEVEL: str = "INFO"


settings = Settings()
