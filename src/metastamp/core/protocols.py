"""Protocol definitions for dependency injection and testability."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Protocol

from .models import SourceFile, WorkItem


class S3ClientProtocol(Protocol):
    """Protocol for S3 client operations."""

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Get object from S3."""
        ...

    def put_object(
        self, Bucket: str, Key: str, Body: bytes, ContentType: str
    ) -> Dict[str, Any]:
        """Put object to S3."""
        ...

    def get_paginator(self, operation_name: str) -> Any:
        """Get paginator for S3 operations."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...


# Called with a work item on creation and on its terminal transition.
ItemObserver = Callable[[WorkItem], None]


class ImageSource(ABC):
    """Abstract source of files to stamp."""

    @abstractmethod
    def discover(self) -> List[str]:
        """Names of the files this source will yield, in submission order."""
        ...

    @abstractmethod
    def read(self, name: str) -> SourceFile:
        """Load one discovered file."""
        ...

    def load_all(self) -> List[SourceFile]:
        """Discover and read every file."""
        return [self.read(name) for name in self.discover()]


class OutputSink(ABC):
    """Abstract destination for stamped images and archives."""

    @abstractmethod
    def write(self, name: str, data: bytes, content_type: str) -> str:
        """Store one blob and return where it went."""
        ...
