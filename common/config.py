from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class GatewaySettings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8000
    default_owner: str = "offline"
    max_projects_per_owner: int = Field(default=50, gt=0)

    model_config = {"env_prefix": "GATEWAY_"}


class CorrectionSettings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8002

    # generative service
    api_style: Literal["openai", "ollama"] = "openai"
    api_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model_name: str = "gpt-4o-mini"
    rewrite_model: str = ""
    diagnosis_temperature: float = 0.0
    rewrite_temperature: float = 0.2
    max_tokens: int = 2048
    request_timeout_s: float = Field(default=60.0, gt=0)

    # pipeline knobs
    max_segments: int = Field(default=80, gt=0)
    batch_size: int = Field(default=12, gt=0)
    max_targets: int = Field(default=24, gt=0)
    min_targets: int = Field(default=6, ge=0)
    padding_min_segments: int = Field(default=12, gt=0)

    # acceptance gate
    max_char_delta: int = Field(default=480, gt=0)
    max_length_ratio: float = Field(default=3.2, gt=0)
    min_length_ratio: float = Field(default=0.25, gt=0)

    model_config = {"env_prefix": "CORRECTION_"}

    @property
    def effective_rewrite_model(self) -> str:
        return self.rewrite_model or self.model_name
