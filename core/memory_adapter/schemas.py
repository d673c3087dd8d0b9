"""
Input contracts for the three memory tools (connect, ingest, query).

Callers may spell any field in camelCase or snake_case. Spellings are folded
onto the canonical snake_case field through an explicit alias table before
pydantic checks the constraints, so both spellings share one constraint set.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar

from email_validator import EmailNotValidError, validate_email
from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    ValidationError,
    model_validator,
)
from pydantic_core import PydanticCustomError

from core.exceptions import InputValidationError


UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
CONNECTION_TARGET_ERROR = "connection_target"
CONNECTION_TARGET_MESSAGE = "Provide connectionId or endUserExternalId"


class MindState(str, Enum):
    """Retrieval-strategy hint sent with a query."""

    AUTO = "auto"
    SHORT_TERM = "short_term"
    MID_TERM = "mid_term"
    LONG_TERM = "long_term"


class SourceType(str, Enum):
    RAW_TEXT = "raw_text"
    GOOGLE_DRIVE = "google_drive"
    NOTION = "notion"
    URL = "url"
    FACEBOOK_ADS = "facebook_ads"
    FACEBOOK_LEADS = "facebook_leads"
    GOOGLE_ADS = "google_ads"
    INSTAGRAM = "instagram"
    LINKEDIN_ADS = "linkedin_ads"
    TIKTOK_ADS = "tiktok_ads"
    SALESFORCE = "salesforce"
    HUBSPOT = "hubspot"
    POSTGRES_QUERY = "postgres_query"
    API_RESPONSE = "api_response"
    FIRECRAWL = "firecrawl"


def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise PydanticCustomError("float_type", "Input should be a valid number")
    return value


def _check_email(value: str) -> str:
    # syntax only; the caller's spelling is kept as sent
    try:
        validate_email(value, check_deliverability=False, test_environment=True)
    except EmailNotValidError as exc:
        raise PydanticCustomError(
            "value_error",
            "value is not a valid email address: {reason}",
            {"reason": str(exc)},
        ) from exc
    return value


Number = Annotated[StrictFloat, BeforeValidator(_reject_bool)]
Email = Annotated[str, AfterValidator(_check_email)]


def same_value(left: Any, right: Any) -> bool:
    """Equality that does not treat True == 1 or 1 == 1.0 as the same value."""

    if type(left) is not type(right):
        return False
    if isinstance(left, Mapping):
        return left.keys() == right.keys() and all(same_value(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)):
        return len(left) == len(right) and all(same_value(a, b) for a, b in zip(left, right))
    return left == right


# canonical field -> accepted spellings
CONNECT_ALIASES: Dict[str, tuple[str, ...]] = {
    "end_user_external_id": ("endUserExternalId", "end_user_external_id"),
    "email": ("email",),
    "metadata": ("metadata",),
}

INGEST_ALIASES: Dict[str, tuple[str, ...]] = {
    "connection_id": ("connectionId", "connection_id"),
    "end_user_external_id": ("endUserExternalId", "end_user_external_id"),
    "email": ("email",),
    "name": ("name",),
    "text": ("text",),
    "type": ("type",),
    "ref": ("ref",),
    "metadata": ("metadata",),
}

QUERY_ALIASES: Dict[str, tuple[str, ...]] = {
    "question": ("question",),
    "connection_id": ("connectionId", "connection_id"),
    "end_user_external_id": ("endUserExternalId", "end_user_external_id"),
    "mind_state": ("mindState", "mind_state"),
    "providers": ("providers",),
    "include": ("include",),
    "max_tokens": ("maxTokens", "max_tokens"),
    "temperature": ("temperature",),
}


def apply_aliases(
    raw: Mapping[str, Any],
    aliases: Mapping[str, Sequence[str]],
) -> tuple[dict[str, Any], list[tuple[str, str]]]:
    """
    Fold accepted spellings onto canonical names.

    Unknown keys are dropped. Returns the folded data and a list of conflicts
    (the same field given twice with different values).
    """

    folded: dict[str, Any] = {}
    conflicts: list[tuple[str, str]] = []
    for canonical, spellings in aliases.items():
        present = [name for name in spellings if name in raw]
        if not present:
            continue
        values = [raw[name] for name in present]
        if any(not same_value(value, values[0]) for value in values[1:]):
            conflicts.append((canonical, f"conflicting values for {' and '.join(present)}"))
            continue
        folded[canonical] = values[0]
    return folded, conflicts


def has_connection_target(data: Mapping[str, Any]) -> bool:
    return bool(data.get("connection_id") or data.get("end_user_external_id"))


def _connection_target_error() -> PydanticCustomError:
    return PydanticCustomError(CONNECTION_TARGET_ERROR, CONNECTION_TARGET_MESSAGE)


class ConnectRequest(BaseModel):
    """Create or reuse a memory connection for an end user."""

    end_user_external_id: str = Field(min_length=1)
    email: Optional[Email] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = {"frozen": True, "extra": "ignore"}


class IngestRequest(BaseModel):
    """Store a text document in an end user's memory."""

    connection_id: Optional[str] = Field(default=None, pattern=UUID_PATTERN)
    end_user_external_id: Optional[str] = Field(default=None, min_length=1)
    email: Optional[Email] = None
    name: str = Field(min_length=1, max_length=255)
    text: str = Field(min_length=100, max_length=10_000_000)
    type: SourceType = SourceType.RAW_TEXT
    ref: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = {"frozen": True, "extra": "ignore"}

    @model_validator(mode="after")
    def ensure_connection_target(self) -> "IngestRequest":
        if not (self.connection_id or self.end_user_external_id):
            raise _connection_target_error()
        return self


class QueryInclude(BaseModel):
    evidence: Optional[StrictBool] = None
    precision: Optional[StrictBool] = None
    citations: Optional[StrictBool] = None
    reconcile: Optional[StrictBool] = None

    model_config = {"frozen": True, "extra": "forbid"}


class QueryRequest(BaseModel):
    """Ask a question against an end user's memory."""

    question: str = Field(min_length=1, max_length=100_000)
    connection_id: Optional[str] = Field(default=None, pattern=UUID_PATTERN)
    end_user_external_id: Optional[str] = Field(default=None, min_length=1)
    mind_state: Optional[MindState] = None
    providers: Optional[List[Annotated[str, Field(min_length=1)]]] = None
    include: Optional[QueryInclude] = None
    max_tokens: Optional[StrictInt] = Field(default=None, ge=1, le=4096)
    temperature: Optional[Number] = Field(default=None, ge=0.0, le=2.0)

    model_config = {"frozen": True, "extra": "ignore"}

    @model_validator(mode="after")
    def ensure_connection_target(self) -> "QueryRequest":
        if not (self.connection_id or self.end_user_external_id):
            raise _connection_target_error()
        return self


RequestT = TypeVar("RequestT", bound=BaseModel)


def format_error_path(loc: Sequence[Any]) -> str:
    return ".".join(str(part) for part in loc) or "(input)"


def pydantic_errors(exc: ValidationError) -> list[tuple[str, str]]:
    return [(format_error_path(error["loc"]), error["msg"]) for error in exc.errors()]


def _parse(
    model: Type[RequestT],
    raw: Any,
    aliases: Mapping[str, Sequence[str]],
    *,
    needs_target: bool,
) -> RequestT:
    if not isinstance(raw, Mapping):
        raise InputValidationError([("(input)", "Expected an object")])

    data, errors = apply_aliases(raw, aliases)
    conflicted = {path for path, _ in errors}
    target_reported = False
    try:
        validated = model.model_validate(data)
    except ValidationError as exc:
        for error in exc.errors():
            if error["loc"] and error["loc"][0] in conflicted:
                continue
            if error["type"] == CONNECTION_TARGET_ERROR:
                target_reported = True
            errors.append((format_error_path(error["loc"]), error["msg"]))
    else:
        if not errors:
            return validated

    # pydantic skips the after-validator once a field fails
    target_conflicted = bool(conflicted & {"connection_id", "end_user_external_id"})
    if needs_target and not (target_reported or target_conflicted or has_connection_target(data)):
        errors.append(("(input)", CONNECTION_TARGET_MESSAGE))
    raise InputValidationError(errors)


def parse_connect_input(raw: Any) -> ConnectRequest:
    return _parse(ConnectRequest, raw, CONNECT_ALIASES, needs_target=False)


def parse_ingest_input(raw: Any) -> IngestRequest:
    return _parse(IngestRequest, raw, INGEST_ALIASES, needs_target=True)


def parse_query_input(raw: Any) -> QueryRequest:
    return _parse(QueryRequest, raw, QUERY_ALIASES, needs_target=True)


# ---------------------------------------------------------------------------
# Tool parameter declarations handed to the host
# ---------------------------------------------------------------------------

CONNECT_TOOL_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["endUserExternalId"],
    "properties": {
        "endUserExternalId": {"type": "string", "description": "Your external end-user identifier."},
        "email": {"type": "string", "format": "email"},
        "metadata": {"type": "object", "additionalProperties": True},
    },
}

INGEST_TOOL_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["name", "text"],
    "properties": {
        "connectionId": {
            "type": "string",
            "format": "uuid",
            "description": "Datagran connection id. If missing, endUserExternalId is required for auto-connect.",
        },
        "endUserExternalId": {"type": "string"},
        "email": {"type": "string", "format": "email"},
        "name": {"type": "string", "minLength": 1, "maxLength": 255},
        "text": {"type": "string", "minLength": 100, "maxLength": 10_000_000},
        "type": {"type": "string", "enum": [item.value for item in SourceType]},
        "ref": {"type": "string"},
        "metadata": {"type": "object", "additionalProperties": True},
    },
    "anyOf": [{"required": ["connectionId"]}, {"required": ["endUserExternalId"]}],
}

QUERY_TOOL_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["question"],
    "properties": {
        "question": {"type": "string", "minLength": 1, "maxLength": 100_000},
        "connectionId": {"type": "string", "format": "uuid"},
        "endUserExternalId": {"type": "string"},
        "mindState": {"type": "string", "enum": [item.value for item in MindState]},
        "providers": {"type": "array", "items": {"type": "string"}},
        "include": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "evidence": {"type": "boolean"},
                "precision": {"type": "boolean"},
                "citations": {"type": "boolean"},
                "reconcile": {"type": "boolean"},
            },
        },
        "maxTokens": {"type": "integer", "minimum": 1, "maximum": 4096},
        "temperature": {"type": "number", "minimum": 0, "maximum": 2},
    },
    "anyOf": [{"required": ["connectionId"]}, {"required": ["endUserExternalId"]}],
}
