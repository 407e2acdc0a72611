"""Pipeline stages: fetch → parse → validate → diff → verify → publish."""

from .diff import DiffEngine
from .fetcher import FetchBatch, FetchResult, Fetcher
from .parser import ParseResult, Parser
from .publisher import PublishOptions, PublishReport, Publisher
from .validator import ValidationResult, Validator
from .verifier import ConfidenceVerifier, HttpFieldVerifier, VerificationReport

__all__ = [
    "ConfidenceVerifier",
    "DiffEngine",
    "FetchBatch",
    "FetchResult",
    "Fetcher",
    "HttpFieldVerifier",
    "ParseResult",
    "Parser",
    "PublishOptions",
    "PublishReport",
    "Publisher",
    "ValidationResult",
    "Validator",
    "VerificationReport",
]
