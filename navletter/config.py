from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    app_name: str = 'Naval Letter Generator'

    data_dir: Path = Field(
        default=Path('./data'),
        validation_alias=AliasChoices('NAVLETTER_DATA_DIR', 'DATA_DIR'),
    )

    # Body font
    default_font_family: str = 'times'
    default_font_size: int = 12

    # Keep-together thresholds (lines)
    min_lines_on_page: int = 2
    min_lines_to_carry: int = 2
    end_block_keep_lines: int = 3
    short_paragraph_lines: int = 5

    # Live preview
    preview_debounce_seconds: float = 0.5
    preview_dpi: int = 96

    # Validation
    subject_max_length: int = 100

    def drafts_dir(self) -> Path:
        return self.data_dir / 'drafts'

    def output_dir(self) -> Path:
        return self.data_dir / 'output'


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.drafts_dir().mkdir(parents=True, exist_ok=True)
    settings.output_dir().mkdir(parents=True, exist_ok=True)
    return settings
