import logging
from typing import Optional, TextIO

from pydantic import BaseModel, Field, field_validator


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    library_level: str = Field("WARNING", description="Level for chatty third-party loggers (aiohttp, asyncio).")

    @field_validator("level", "library_level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level '{value}'.")
        return value

    def apply(self, stream: Optional[TextIO] = None) -> None:
        """Configures the root logger and quiets library loggers."""
        logging.basicConfig(level=self.level, format=self.format, stream=stream)
        for name in ("aiohttp", "asyncio"):
            logging.getLogger(name).setLevel(self.library_level)
