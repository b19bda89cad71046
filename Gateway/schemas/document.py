from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerateDocumentRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    prompt: str = Field(min_length=10, max_length=5000)
    format: Literal["pdf", "docx", "txt"] = "pdf"


# Listing row (content omitted)
class DocumentSummaryOut(BaseModel):
    id: str
    title: str
    format: str
    file_url: str = ""
    created_at: Optional[datetime] = None


class DocumentOut(DocumentSummaryOut):
    content: str = ""
    prompt: str
    generated_by: str
    metadata: Optional[dict] = None


class GeneratedDocumentOut(BaseModel):
    document: DocumentOut
    download_url: str = ""
