import datetime as dt
import re
from dataclasses import dataclass
from enum import StrEnum

DEFAULT_CONTENT_TYPE = "image/png"
OFFICIAL_NAMESPACE = "library"

# Docker Hub namespace and repository segment, lowercase with single `_` or `-` separators
SEGMENT_RE = r"[a-z0-9]+(?:[_-][a-z0-9]+)*"
IDENTIFIER_RE = re.compile(rf"^(?:({SEGMENT_RE})/)?({SEGMENT_RE})$")
# route shape only, segment content is validated by ImageIdentifier.parse
LOGO_PATH_RE = re.compile(r"^/(?:([^/]+)/)?([^/]+)\.png$")


class ClientInputError(Exception):
    """Request can never succeed as given, reported as a 4xx"""


class InvalidIdentifierError(ClientInputError):
    pass


class UpstreamAbsence(Exception):  # noqa: N818
    """Upstream confirmed there is no logo, safe to remember"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message


class UpstreamTransientFailure(Exception):
    """Upstream could not be reached or misbehaved, retry on a later request"""


class UpstreamTimeout(UpstreamTransientFailure):
    pass


class InternalFault(Exception):
    pass


class CacheStoreError(InternalFault):
    pass


class RenderingError(InternalFault):
    pass


@dataclass(frozen=True)
class ImageIdentifier:
    """Docker Hub image name, as namespace and repository

    namespace: None for official images given without a namespace, e.g. `redis`
    repository: repository name within the namespace
    """

    namespace: str | None
    repository: str

    @classmethod
    def parse(cls, image: str) -> "ImageIdentifier":
        match = IDENTIFIER_RE.match(image)
        if not match:
            raise InvalidIdentifierError(f"Invalid image identifier: {image!r}")
        namespace, repository = match.groups()
        return cls(namespace, repository)

    @classmethod
    def from_path(cls, path: str) -> "ImageIdentifier | None":
        """Parse a `/namespace/repository.png` request path

        Returns None if the path is not shaped like a logo request at all,
        raises InvalidIdentifierError if it is but the name is not valid
        """
        match = LOGO_PATH_RE.match(path)
        if not match:
            return None
        namespace, repository = match.groups()
        return cls.parse(f"{namespace}/{repository}" if namespace else repository)

    @property
    def official(self) -> bool:
        return self.namespace is None or self.namespace == OFFICIAL_NAMESPACE

    def __str__(self) -> str:
        """Serialize back to the `namespace/repository` form"""
        return f"{self.namespace}/{self.repository}" if self.namespace else self.repository


@dataclass
class CacheRecord:
    namespace: str
    url: str | None
    content: bytes | None
    content_type: str | None
    updated_at: dt.datetime | None = None

    @property
    def absent(self) -> bool:
        """Confirmed that there is no logo for this namespace"""
        return self.url is None

    @property
    def media_type(self) -> str:
        return self.content_type or DEFAULT_CONTENT_TYPE

    def as_dict(self) -> dict[str, str | int | bool | None]:
        return {
            "namespace": self.namespace,
            "url": self.url,
            "absent": self.absent,
            "content_type": self.media_type,
            "size": len(self.content) if self.content is not None else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class OutcomeStatus(StrEnum):
    FOUND = "found"
    ABSENT = "absent"
    DELIVERY_FAILED = "delivery_failed"
    TIMEOUT = "timeout"


@dataclass
class LogoOutcome:
    status: OutcomeStatus
    content: bytes | None = None
    content_type: str = DEFAULT_CONTENT_TYPE
    message: str | None = None
    # live official logos and fresh/cached scrapes use different cache policies
    official: bool = False
    # served from a stored record, rather than freshly acquired
    cached: bool = False

    @classmethod
    def from_record(cls, record: CacheRecord) -> "LogoOutcome":
        if record.absent:
            return cls(OutcomeStatus.ABSENT, cached=True)
        return cls(OutcomeStatus.FOUND, content=record.content, content_type=record.media_type, cached=True)
