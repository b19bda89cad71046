from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TranslateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    text: str = Field(min_length=1, max_length=10000)
    source_lang: str = Field(default="en", min_length=2, max_length=16, alias="sourceLang")
    target_lang: str = Field(default="hi", min_length=2, max_length=16, alias="targetLang")


class DetectLanguageRequest(BaseModel):
    text: str = Field(min_length=1, max_length=10000)


class TranslationResultOut(BaseModel):
    source_text: str
    translated_text: str
    source_lang: str
    target_lang: str
    cached: bool


class LanguageDetectionOut(BaseModel):
    language: str
    confidence: Optional[float] = None


class TranslationOut(BaseModel):
    id: str
    source_text: str
    translated_text: str
    source_lang: str
    target_lang: str
    created_at: Optional[datetime] = None
