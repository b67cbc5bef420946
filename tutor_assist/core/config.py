"""Application configuration utilities."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel


class Settings(BaseModel):
    LOG_LEVEL: str = "INFO"
    MIN_GAP_MINUTES: int = 15
    DEFAULT_SESSION_TIME: str = "16:00"
    DEFAULT_SESSION_DURATION: int = 60
    SLOT_STEP_MINUTES: int = 30
    SLOT_RANGE_START: str = "14:00"
    SLOT_RANGE_END: str = "22:00"
    MAX_SUGGESTED_SLOTS: int = 6
    MAX_SUGGESTIONS: int = 5
    HISTORY_RETENTION_DAYS: int = 30
    PERSIST_PENDING: bool = False
    STORE_BACKEND: str = "memory"
    STORE_PATH: str = "tutor_assist_store.json"


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@lru_cache
def get_settings() -> Settings:
    defaults = Settings()
    return Settings(
        LOG_LEVEL=os.getenv("LOG_LEVEL", defaults.LOG_LEVEL),
        MIN_GAP_MINUTES=os.getenv("MIN_GAP_MINUTES", defaults.MIN_GAP_MINUTES),
        DEFAULT_SESSION_TIME=os.getenv("DEFAULT_SESSION_TIME", defaults.DEFAULT_SESSION_TIME),
        DEFAULT_SESSION_DURATION=os.getenv("DEFAULT_SESSION_DURATION", defaults.DEFAULT_SESSION_DURATION),
        SLOT_STEP_MINUTES=os.getenv("SLOT_STEP_MINUTES", defaults.SLOT_STEP_MINUTES),
        SLOT_RANGE_START=os.getenv("SLOT_RANGE_START", defaults.SLOT_RANGE_START),
        SLOT_RANGE_END=os.getenv("SLOT_RANGE_END", defaults.SLOT_RANGE_END),
        MAX_SUGGESTED_SLOTS=os.getenv("MAX_SUGGESTED_SLOTS", defaults.MAX_SUGGESTED_SLOTS),
        MAX_SUGGESTIONS=os.getenv("MAX_SUGGESTIONS", defaults.MAX_SUGGESTIONS),
        HISTORY_RETENTION_DAYS=os.getenv("HISTORY_RETENTION_DAYS", defaults.HISTORY_RETENTION_DAYS),
        PERSIST_PENDING=_flag(os.getenv("PERSIST_PENDING", "false")),
        STORE_BACKEND=os.getenv("STORE_BACKEND", defaults.STORE_BACKEND),
        STORE_PATH=os.getenv("STORE_PATH", defaults.STORE_PATH),
    )


settings = get_settings()
