from pydantic import BaseModel
from typing import Optional


class DocumentStatus(BaseModel):
    success: bool = True
    exists: bool
    filename: Optional[str] = None
    shareUrl: Optional[str] = None
    dropboxPath: Optional[str] = None


class DocumentUploadResult(BaseModel):
    success: bool = True
    dropboxPath: str
    shareUrl: Optional[str] = None
    size: Optional[int] = None


class DocumentDeleteResult(BaseModel):
    success: bool = True
    message: str
    path: str
