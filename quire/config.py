from typing import Optional

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quire.errors import ConfigError


def _split_csv(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [s.strip() for s in raw.split(",") if s.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    GITHUB_REPO_OWNER: str = Field(..., min_length=1, description="Owner of the content repository")
    GITHUB_REPO_NAME: str = Field(..., min_length=1, description="Content repository name")
    GITHUB_BRANCH_NAME: str = Field(..., min_length=1, description="Branch every read and write targets")
    GITHUB_WRITE_TOKEN: SecretStr = Field(..., description="Access token with contents write scope")
    GITHUB_CONTENT_PATH: str = Field("posts", description="Directory listed when no path is given")
    GITHUB_API_URL: str = Field("https://api.github.com", description="REST API base URL")
    GITHUB_TIMEOUT: float = Field(30.0, gt=0, description="Per-request timeout in seconds")

    ADMIN_EMAILS: str = Field("", description="Comma-separated emails allowed to commit")
    ADMIN_GITHUB_USERNAMES: str = Field("", description="Comma-separated GitHub logins allowed to commit")

    QUIRE_TOKEN: Optional[SecretStr] = Field(None, description="Bearer token guarding the REST API")
    COMMIT_AUTHOR_NAME: Optional[str] = Field(None, description="Author recorded for CLI and MCP commits")
    COMMIT_AUTHOR_EMAIL: Optional[str] = Field(None, description="Email recorded for CLI and MCP commits")
    LOG_LEVEL: str = Field("INFO", description="Root log level")

    @property
    def repo_slug(self) -> str:
        return f"{self.GITHUB_REPO_OWNER}/{self.GITHUB_REPO_NAME}"

    @property
    def admin_emails(self) -> list[str]:
        return _split_csv(self.ADMIN_EMAILS)

    @property
    def admin_usernames(self) -> list[str]:
        return _split_csv(self.ADMIN_GITHUB_USERNAMES)

    @field_validator("GITHUB_WRITE_TOKEN")
    @classmethod
    def _token_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("must not be blank")
        return value


def load_settings(**overrides) -> Settings:
    """
    Build the process-wide settings once, at startup.

    Every missing or invalid value is reported in a single ConfigError so
    the process fails fast instead of on the first request.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = []
        for err in exc.errors():
            name = ".".join(str(part) for part in err["loc"])
            if err["type"] == "missing":
                problems.append(f"{name} is not set")
            else:
                problems.append(f"{name}: {err['msg']}")
        raise ConfigError("Invalid configuration: " + "; ".join(problems)) from exc
