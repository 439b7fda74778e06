from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from anamnesis.domain.constants import DEFAULT_NEW_CARDS_PER_DAY, DEFAULT_REVIEW_CARDS_PER_DAY
from anamnesis.domain.models import DeckSettings


def _config_files() -> list[Path]:
    return [
        Path.home() / ".config/anamnesis/config.toml",
        Path.home() / ".anamnesis.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for anamnesis.
    Supports loading from:
    1. Environment variables (ANAMNESIS_*)
    2. Config file (~/.config/anamnesis/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="ANAMNESIS_",
        extra="ignore",
    )

    # Storage
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/anamnesis/decks",
        validate_default=True,
    )
    storage: Literal["yaml", "memory"] = "yaml"

    # Scheduling
    algorithm: Literal["fsrs", "sm2"] = "fsrs"
    new_cards_per_day: int = Field(default=DEFAULT_NEW_CARDS_PER_DAY, gt=0)
    review_cards_per_day: int = Field(default=DEFAULT_REVIEW_CARDS_PER_DAY, gt=0)

    verbose: int = Field(default=0, ge=0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in _config_files() if f.exists()), None)

        # Earlier sources take priority: CLI overrides, then env, then file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("data_dir", mode="before")
    @classmethod
    def resolve_data_dir(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    def deck_settings(self) -> DeckSettings:
        """Quotas applied to newly created decks."""
        return DeckSettings(
            new_cards_per_day=self.new_cards_per_day,
            review_cards_per_day=self.review_cards_per_day,
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/anamnesis/config.toml (if exists)
    3. Environment variables (ANAMNESIS_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes None for options the user did not give
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
