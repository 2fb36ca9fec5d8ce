"""OpenAPI document fetching, parsing and import reconciliation."""

from .fetcher import DocumentFetcher
from .parser import OpenApiParser, load_document
from .reconciler import Reconciler

__all__ = [
    "DocumentFetcher",
    "OpenApiParser",
    "Reconciler",
    "load_document",
]
