"""
Database package initialization
"""
from .core import Database, normalize_url
from .models import Base, CapturedRequest, UploadedFile

__all__ = [
    "Base",
    "CapturedRequest",
    "Database",
    "UploadedFile",
    "normalize_url",
]
