"""Configuration management for PageSafe.

This module defines the Pydantic settings and option models used throughout
the package. Environment settings decide where the policy file lives; the
`PolicyOptions` model carries the policy knobs that can be tuned per
deployment without touching the element table.
"""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pagesafe.engines.validators import DEFAULT_URL_SCHEMES, REL_TOKENS

# Schemes that can execute code or smuggle documents; never configurable.
FORBIDDEN_URL_SCHEMES = frozenset({"javascript", "vbscript", "data", "file"})


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        PROJECT_NAME (str): The name of the application.
        POLICY_FILE (str): Path to the YAML policy file read by `PolicyFile`.
    """
    PROJECT_NAME: str = "PageSafe"
    POLICY_FILE: str = "pagesafe.yaml"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAGESAFE_",
        case_sensitive=True,
        extra="ignore",
    )


class PolicyOptions(BaseModel):
    """Extension points of the HTML policy.

    Attributes:
        allow_data_images (bool): Accept base64 `data:image/*` URLs in `img[src]`.
        link_rel_on_blank (Optional[str]): Rel tokens appended to anchors that
            open in a new tab (e.g. "noopener noreferrer"). None disables it.
        max_data_attribute_length (int): Upper bound for `data-*` values.
        url_schemes (Tuple[str, ...]): Schemes accepted for absolute URLs.
    """
    model_config = ConfigDict(frozen=True)

    allow_data_images: bool = False
    link_rel_on_blank: Optional[str] = None
    max_data_attribute_length: int = Field(64, gt=0, le=1024)
    url_schemes: Tuple[str, ...] = DEFAULT_URL_SCHEMES

    @field_validator("link_rel_on_blank")
    @classmethod
    def _check_rel(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        tokens = value.split()
        if not tokens:
            return None
        unknown = [t for t in tokens if t.lower() not in REL_TOKENS]
        if unknown:
            raise ValueError(f"Unsupported rel tokens: {unknown}")
        return " ".join(tokens)

    @field_validator("url_schemes")
    @classmethod
    def _check_schemes(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        schemes = tuple(s.strip().lower() for s in value)
        refused = sorted(set(schemes) & FORBIDDEN_URL_SCHEMES)
        if refused:
            raise ValueError(f"Refusing dangerous URL schemes: {refused}")
        return schemes


settings = Settings()
