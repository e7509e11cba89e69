"""
Request Models.

Typed description of a single logical API call.  ``RequestOptions`` is
what callers pass in; ``RequestDescriptor`` is the frozen, fully-resolved
form the dispatcher sends (one per dispatch generation).
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field

from session_client.models.enums import HttpMethod

# (filename, content, content_type), as httpx expects for multipart files.
FileTuple = tuple[str, bytes, str]


class FormData:
    """Multipart form payload.

    Kept as a plain class (not a pydantic model) so it can never be
    confused with a JSON mapping body during validation.  When the body of
    a request is ``FormData`` the transport writes its own multipart
    ``Content-Type`` header, boundary included.
    """

    def __init__(
        self,
        fields: Optional[dict[str, str]] = None,
        files: Optional[dict[str, FileTuple]] = None,
    ) -> None:
        self.fields: dict[str, str] = dict(fields or {})
        self.files: dict[str, FileTuple] = dict(files or {})

    def add_field(self, name: str, value: str) -> None:
        self.fields[name] = value

    def add_file(
        self,
        name: str,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        self.files[name] = (filename, content, content_type)

    def __repr__(self) -> str:
        return f"FormData(fields={sorted(self.fields)}, files={sorted(self.files)})"


RequestBody = Union[FormData, bytes, str, dict[str, object], list[object]]
QueryParams = dict[str, Union[str, int, float, bool]]


class RequestOptions(BaseModel):
    """Caller-facing options for ``RequestDispatcher.call``.

    Attributes
    ----------
    method:
        HTTP verb (``GET`` by default).
    headers:
        Extra headers merged over the defaults.
    body:
        JSON-serialisable mapping/list, pre-encoded ``str``/``bytes``, or
        a ``FormData`` payload.
    params:
        Query-string parameters.
    skip_content_type:
        Suppress the default JSON ``Content-Type`` header.
    skip_auth_recovery:
        Return 401 responses as-is: no token refresh, no session check
        and no forced logout.  Used by probes that are allowed to run
        without a signed-in user.
    """

    method: HttpMethod = HttpMethod.GET
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[RequestBody] = None
    params: QueryParams = Field(default_factory=dict)
    skip_content_type: bool = False
    skip_auth_recovery: bool = False

    model_config = {"arbitrary_types_allowed": True}


class RequestDescriptor(BaseModel):
    """Immutable description of one dispatch generation.

    ``retry_count`` only moves on the auth-recovery path; transient
    network/5xx retries reuse the same descriptor.
    """

    url: str
    method: HttpMethod = HttpMethod.GET
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[RequestBody] = None
    params: QueryParams = Field(default_factory=dict)
    skip_content_type: bool = False
    skip_auth_recovery: bool = False
    retry_count: int = Field(default=0, ge=0)

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def is_form_data(self) -> bool:
        return isinstance(self.body, FormData)

    def with_headers(self, headers: dict[str, str]) -> "RequestDescriptor":
        """Return a copy carrying *headers* in place of the current ones."""
        return self.model_copy(update={"headers": dict(headers)})

    def next_generation(self) -> "RequestDescriptor":
        """Return a copy for the auth-recovery re-dispatch."""
        return self.model_copy(update={"retry_count": self.retry_count + 1})


class BatchRequest(BaseModel):
    """One entry of ``ApiClient.batch``.

    Results are keyed by ``id`` when given, otherwise by ``endpoint``.
    The cache options only apply to ``GET`` entries.
    """

    endpoint: str
    id: Optional[str] = None
    method: HttpMethod = HttpMethod.GET
    body: Optional[RequestBody] = None
    params: QueryParams = Field(default_factory=dict)
    use_cache: bool = False
    cache_ttl: Optional[float] = Field(default=None, gt=0)
    bypass_cache: bool = False

    model_config = {"arbitrary_types_allowed": True}

    @property
    def result_key(self) -> str:
        return self.id or self.endpoint
