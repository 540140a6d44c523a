"""
Exception hierarchy for gator.

Each error carries the pipeline phase it was raised in so the command
shell can report where a failure happened.
"""


class GatorError(Exception):
    """Base exception for all gator errors."""

    phase = "command"


class FetchError(GatorError):
    """Base exception for feed retrieval failures."""

    phase = "fetch"

    def __init__(self, message: str, url: str):
        self.url = url
        super().__init__(message)


class NetworkError(FetchError):
    """The transport could not complete the request (DNS, refused, timeout)."""

    def __init__(self, url: str, cause: BaseException):
        self.cause = cause
        super().__init__(
            f"Network error fetching feed from {url}: {str(cause) or type(cause).__name__}",
            url,
        )


class HttpStatusError(FetchError):
    """The server answered with a non-2xx status."""

    def __init__(self, url: str, status: int, reason: str | None = None):
        self.status = status
        self.reason = reason or ""
        super().__init__(
            f"Failed to fetch feed from {url}. Status: {status} {self.reason}".rstrip(),
            url,
        )


class ReadError(FetchError):
    """The response body could not be read or decoded."""

    def __init__(self, url: str, cause: BaseException):
        self.cause = cause
        super().__init__(f"Error reading response body from {url}: {cause}", url)


class DocumentError(GatorError):
    """Base exception for document-fatal feed parsing failures."""

    phase = "parse"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        if source:
            message = f"{message} (source: {source})"
        super().__init__(message)


class ParseError(DocumentError):
    """The raw text is not well-formed XML."""

    def __init__(self, cause: BaseException, source: str | None = None):
        self.cause = cause
        super().__init__(f"Error parsing XML: {cause}", source)


class SchemaError(DocumentError):
    """The document does not have the required channel structure."""

    def __init__(self, field: str, reason: str, source: str | None = None):
        self.field = field
        super().__init__(f"Invalid RSS feed: '{field}' {reason}", source)


class StoreError(GatorError):
    """Base exception for persistence failures."""

    phase = "store"


class NotFoundError(StoreError):
    """A required row does not exist."""

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity.capitalize()} not found: {key}")


class UniqueViolation(StoreError):
    """An insert would break a uniqueness constraint."""

    def __init__(self, entity: str, fields: tuple[str, ...], message: str | None = None):
        self.entity = entity
        self.fields = fields
        super().__init__(
            message or f"A {entity} with the same {', '.join(fields)} already exists"
        )


class DuplicateError(UniqueViolation):
    """A user with this name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__("user", ("name",), f"User already exists: {name}")


class AlreadyFollowingError(UniqueViolation):
    """The user already follows the feed."""

    def __init__(self, user_id: str, feed_id: str):
        self.user_id = user_id
        self.feed_id = feed_id
        super().__init__(
            "feed_follow",
            ("user_id", "feed_id"),
            f"User {user_id} already follows feed {feed_id}",
        )


class PreconditionError(GatorError):
    """A command was invoked without the state it requires."""

    pass
