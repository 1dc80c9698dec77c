"""Configuration management"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field

from ctxwin.session.context import DEFAULT_TARGET_TOKEN_LIMIT
from ctxwin.session.summarize import OPENROUTER_BASE_URL, SUMMARIZATION_MODEL

logger = logging.getLogger(__name__)


class ModelInfo(BaseModel):
    """Capabilities of a chat model"""
    context_window: int = Field(default=8192, gt=0)
    vision_supported: bool = False


class ContextConfig(BaseModel):
    """How conversations are fitted into the model's context window"""
    target_token_limit: int = Field(default=DEFAULT_TARGET_TOKEN_LIMIT, gt=0)
    summarization_enabled: bool = True
    summarization_model: str = SUMMARIZATION_MODEL
    summarization_base_url: str = OPENROUTER_BASE_URL


class Config(BaseModel):
    model: str = "meta-llama/llama-3.3-70b-instruct"
    base_url: str = OPENROUTER_BASE_URL
    temperature: float = 0.7
    top_p: float = 0.95
    max_tokens: int | None = Field(default=4096, gt=0)
    custom_system_prompt: str = ""
    context: ContextConfig = Field(default_factory=ContextConfig)
    models: dict[str, ModelInfo] = Field(default_factory=dict)
    default_model: ModelInfo = Field(default_factory=ModelInfo)

    def model_info(self, model_id: str) -> ModelInfo:
        """Look up a model, falling back to the default entry"""
        info = self.models.get(model_id)
        if info is None:
            logger.info(
                f"Unknown model '{model_id}', using default context window "
                f"of {self.default_model.context_window}"
            )
            return self.default_model
        return info

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from file"""
        if path is None:
            # Look for ctxwin.json in current dir or home
            candidates = [
                Path.cwd() / "ctxwin.json",
                Path.home() / ".config" / "ctxwin" / "config.json",
            ]
            for p in candidates:
                if p.exists():
                    path = p
                    break

        if path and path.exists():
            data = json.loads(path.read_text())
            return cls(**data)

        return cls()

    def save(self, path: Path):
        """Save config to file"""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2))
