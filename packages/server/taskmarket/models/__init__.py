# SQLModel definitions, imported here so the metadata is populated.
from .base import TimestampMixin  # noqa: F401
from .document import Document  # noqa: F401
