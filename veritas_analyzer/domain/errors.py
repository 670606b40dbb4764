"""Tagged error variants carried in stage results instead of being raised"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from veritas_analyzer.domain.models import ParseWarning


class ParseErrorKind(str, Enum):
    NO_TEXT_CONTENT = "no_text_content"
    UNSUPPORTED_FORMAT = "unsupported_format"
    CORRUPT_DOCUMENT = "corrupt_document"
    NO_TRANSACTIONS_FOUND = "no_transactions_found"


class ClassifierErrorKind(str, Enum):
    TIMEOUT = "timeout"
    REMOTE_FAILURE = "remote_failure"
    INVALID_RESPONSE = "invalid_response"
    CIRCUIT_OPEN = "circuit_open"


class PipelineErrorKind(str, Enum):
    PARSE_FAILED = "parse_failed"
    NO_VALID_TRANSACTIONS = "no_valid_transactions"


@dataclass(frozen=True)
class ParseError:
    """Fatal parse failure, reported with the per-line warnings collected so far"""

    kind: ParseErrorKind
    message: str
    warnings: List[ParseWarning] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationError:
    """A parsed record that could not become a valid Transaction"""

    line_number: int
    reason: str


@dataclass(frozen=True)
class ClassifierError:
    kind: ClassifierErrorKind
    message: str


@dataclass(frozen=True)
class PipelineError:
    """Caller-visible failure of an analysis run"""

    kind: PipelineErrorKind
    stage: str
    message: str
    parse_error: Optional[ParseError] = None
    warnings: List[str] = field(default_factory=list)
