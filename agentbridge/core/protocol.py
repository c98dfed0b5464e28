"""JSON message schema for the file-based agent bridge.

Human-readable protocol shared by the host (Bridge) and the agent daemon.

Request format (request.json):
    {
        "timestamp": "<RFC3339>",
        "workspace_path": str,
        "current_file": str | null,
        "current_code": str | null,
        "files": [str, ...],
        "ide_source": str,
        "query": str,
        "request_id": str           # correlation id, optional for readers
    }

Response format (response.json):
    {
        "timestamp": "<RFC3339>",
        "response_text": str,
        "code_suggestions": [
            {"file": str, "code": str, "language": str, "description": str}
        ],
        "apply_changes": bool,
        "request_id": str | null    # echoed from the request when known
    }

Unknown keys are ignored on read so either side can be upgraded first.
"""

import json
import re
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from agentbridge.core.errors import InvalidRequest, InvalidResponse, SerializationError

# Fractional seconds beyond microseconds (e.g. nanosecond stamps) are cut to 6 digits
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format an aware datetime as RFC 3339 with a trailing 'Z'."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into an aware UTC datetime.

    Accepts a trailing 'Z' and nanosecond precision, both of which
    datetime.fromisoformat() rejects on older interpreters.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class RequestMessage:
    """Query plus editor context, written once by the host."""

    query: str
    workspace_path: str = ""
    current_file: Optional[str] = None
    current_code: Optional[str] = None
    files: Tuple[str, ...] = ()
    ide_source: str = ""
    timestamp: datetime = field(default_factory=now_utc)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def create(cls, query: str) -> "RequestMessage":
        """Create a request with a fresh timestamp and correlation id."""
        return cls(query=query)

    def with_workspace(self, path: str) -> "RequestMessage":
        return replace(self, workspace_path=path)

    def with_current_file(self, file: str, code: str) -> "RequestMessage":
        return replace(self, current_file=file, current_code=code)

    def with_files(self, files: Iterable[str]) -> "RequestMessage":
        return replace(self, files=tuple(files))

    def with_ide_source(self, source: str) -> "RequestMessage":
        return replace(self, ide_source=source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "workspace_path": self.workspace_path,
            "current_file": self.current_file,
            "current_code": self.current_code,
            "files": list(self.files),
            "ide_source": self.ide_source,
            "query": self.query,
            "request_id": self.request_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestMessage":
        """
        Build a request from decoded JSON.

        Raises:
            InvalidRequest: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise InvalidRequest("Request must be a JSON object")

        query = data.get("query")
        if not isinstance(query, str) or not query.strip():
            raise InvalidRequest("Request is missing a non-empty 'query'")

        files = data.get("files") or []
        if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
            raise InvalidRequest("'files' must be a list of strings")

        for key in ("current_file", "current_code"):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise InvalidRequest(f"'{key}' must be a string or null")

        for key in ("workspace_path", "ide_source"):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise InvalidRequest(f"'{key}' must be a string")

        try:
            timestamp = parse_timestamp(data["timestamp"]) if "timestamp" in data else now_utc()
        except ValueError as e:
            raise InvalidRequest(str(e)) from e

        request_id = data.get("request_id")
        return cls(
            query=query,
            workspace_path=data.get("workspace_path") or "",
            current_file=data.get("current_file"),
            current_code=data.get("current_code"),
            files=tuple(files),
            ide_source=data.get("ide_source") or "",
            timestamp=timestamp,
            request_id=request_id if isinstance(request_id, str) and request_id else "",
        )


@dataclass
class CodeSuggestion:
    """A proposed change extracted from the agent's output (best-effort)."""

    file: str
    code: str
    language: str
    description: str


@dataclass
class ResponseMessage:
    """Answer written by the daemon and consumed by the host."""

    response_text: str
    code_suggestions: List[CodeSuggestion] = field(default_factory=list)
    apply_changes: bool = False
    timestamp: datetime = field(default_factory=now_utc)
    request_id: Optional[str] = None

    def has_suggestions(self) -> bool:
        return bool(self.code_suggestions)

    def suggestions_for_file(self, file: str) -> List[CodeSuggestion]:
        return [s for s in self.code_suggestions if s.file == file]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "response_text": self.response_text,
            "code_suggestions": [asdict(s) for s in self.code_suggestions],
            "apply_changes": self.apply_changes,
            "request_id": self.request_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResponseMessage":
        """
        Build a response from decoded JSON.

        Raises:
            InvalidResponse: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise InvalidResponse("Response must be a JSON object")

        text = data.get("response_text")
        if not isinstance(text, str):
            raise InvalidResponse("Response is missing 'response_text'")

        apply_changes = data.get("apply_changes", False)
        if not isinstance(apply_changes, bool):
            raise InvalidResponse("'apply_changes' must be a boolean")

        raw_suggestions = data.get("code_suggestions") or []
        if not isinstance(raw_suggestions, list):
            raise InvalidResponse("'code_suggestions' must be a list")

        suggestions = []
        for item in raw_suggestions:
            if not isinstance(item, dict):
                raise InvalidResponse("Each code suggestion must be an object")
            values = {}
            for key in ("file", "code", "language", "description"):
                value = item.get(key, "")
                if not isinstance(value, str):
                    raise InvalidResponse(f"Code suggestion field '{key}' must be a string")
                values[key] = value
            suggestions.append(CodeSuggestion(**values))

        try:
            timestamp = parse_timestamp(data.get("timestamp", ""))
        except ValueError as e:
            raise InvalidResponse(f"Invalid response timestamp: {e}") from e

        request_id = data.get("request_id")
        return cls(
            response_text=text,
            code_suggestions=suggestions,
            apply_changes=apply_changes,
            timestamp=timestamp,
            request_id=request_id if isinstance(request_id, str) and request_id else None,
        )


def serialize_request(request: RequestMessage) -> bytes:
    """
    Serialize request to bytes for request.json.

    Returns:
        UTF-8 encoded, indented JSON bytes

    Raises:
        SerializationError: If the request cannot be encoded
    """
    try:
        return json.dumps(request.to_dict(), ensure_ascii=False, indent=2).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot encode request: {e}") from e


def deserialize_request(data: bytes) -> RequestMessage:
    """
    Deserialize request from bytes.

    Raises:
        InvalidRequest: If data is not valid JSON or fails validation
    """
    try:
        decoded = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidRequest(f"Invalid JSON: {e}") from e
    return RequestMessage.from_dict(decoded)


def serialize_response(response: ResponseMessage) -> bytes:
    """
    Serialize response to bytes for response.json.

    Raises:
        SerializationError: If the response cannot be encoded
    """
    try:
        return json.dumps(response.to_dict(), ensure_ascii=False, indent=2).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot encode response: {e}") from e


def deserialize_response(data: bytes) -> ResponseMessage:
    """
    Deserialize response from bytes.

    Raises:
        InvalidResponse: If data is not valid JSON or fails validation
    """
    try:
        decoded = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidResponse(f"Invalid JSON: {e}") from e
    return ResponseMessage.from_dict(decoded)
