"""Ingestion pipeline: body normalization, multipart materialization, persistence."""

from .body import BodyEncoding, NormalizedBody, classify, normalize_body
from .multipart import FileDescriptor, MultipartResult, materialize
from .record import RequestMeta, build_record, ingest_body, persist_capture

__all__ = [
    "BodyEncoding",
    "FileDescriptor",
    "MultipartResult",
    "NormalizedBody",
    "RequestMeta",
    "build_record",
    "classify",
    "ingest_body",
    "materialize",
    "normalize_body",
    "persist_capture",
]
