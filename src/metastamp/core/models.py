"""Shared data models for MetaStamp."""

import uuid
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import InvalidStateTransition
from .formatting import combine_formats

OUTPUT_EXTENSIONS: Dict[str, str] = {"JPEG": "jpg", "PNG": "png", "WEBP": "webp"}
OUTPUT_CONTENT_TYPES: Dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}


class Position(str, Enum):
    """Corner of the image the stamp is anchored to."""

    TOP_LEFT = "topLeft"
    TOP_RIGHT = "topRight"
    BOTTOM_LEFT = "bottomLeft"
    BOTTOM_RIGHT = "bottomRight"

    @property
    def is_right(self) -> bool:
        return self in (Position.TOP_RIGHT, Position.BOTTOM_RIGHT)

    @property
    def is_bottom(self) -> bool:
        return self in (Position.BOTTOM_LEFT, Position.BOTTOM_RIGHT)


class StyleConfig(BaseModel):
    """Declarative style of the rendered stamp.

    Serialized with the camelCase aliases used by stored preferences;
    either naming is accepted on input.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    # Typography
    font_size: float = Field(120, gt=0, alias="fontSize")
    font_family: str = Field("Inter", alias="fontFamily")
    font_color: str = Field("#FBBF24", alias="fontColor")

    # Stroke
    stroke_color: str = Field("#000000", alias="strokeColor")
    stroke_width: float = Field(5, ge=0, alias="strokeWidth")

    # Position
    position: Position = Field(Position.BOTTOM_RIGHT, alias="position")
    offset_x: float = Field(20, ge=0, alias="offsetX")
    offset_y: float = Field(20, ge=0, alias="offsetY")

    # Drop shadow
    shadow_enabled: bool = Field(False, alias="dropShadowEnabled")
    shadow_blur: float = Field(4, ge=0, alias="dropShadowBlur")
    shadow_offset_x: float = Field(2, alias="dropShadowOffsetX")
    shadow_offset_y: float = Field(2, alias="dropShadowOffsetY")
    shadow_color: str = Field("rgba(0, 0, 0, 0.5)", alias="dropShadowColor")

    # Date/time format
    date_format_preset: str = Field("YYYY-MM-DD", alias="dateFormatPreset")
    time_format_preset: str = Field("HH:mm:ss", alias="timeFormatPreset")
    date_format: str = Field("YYYY-MM-DD HH:mm:ss", alias="dateFormat")
    use_custom_format: bool = Field(False, alias="useCustomFormat")

    def with_presets(
        self, date_preset: Optional[str] = None, time_preset: Optional[str] = None
    ) -> "StyleConfig":
        """Return a copy whose format is the combination of the two presets."""
        date_preset = self.date_format_preset if date_preset is None else date_preset
        time_preset = self.time_format_preset if time_preset is None else time_preset
        return self.model_copy(
            update={
                "date_format_preset": date_preset,
                "time_format_preset": time_preset,
                "date_format": combine_formats(date_preset, time_preset),
                "use_custom_format": False,
            }
        )

    def with_custom_format(self, date_format: str) -> "StyleConfig":
        """Return a copy using literal user-supplied format text."""
        return self.model_copy(
            update={"date_format": date_format, "use_custom_format": True}
        )

    def to_storage(self) -> Dict[str, object]:
        """Serialize with the stored (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


class ResolvedTimestamp(BaseModel):
    """Output of metadata resolution."""

    instant: datetime
    is_fallback: bool
    source_field: Optional[str] = None


class SourceFile(BaseModel):
    """One submitted file."""

    name: str
    data: bytes = Field(repr=False)
    content_type: str = "application/octet-stream"

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")


class RenderedOutput(BaseModel):
    """Encoded stamped image plus the handle it is retrievable by."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    handle: str
    format: str = "JPEG"
    width: int = 0
    height: int = 0

    @property
    def content_type(self) -> str:
        return OUTPUT_CONTENT_TYPES.get(self.format, "application/octet-stream")

    @property
    def extension(self) -> str:
        return OUTPUT_EXTENSIONS.get(self.format, self.format.lower())


class ArchiveEntry(BaseModel):
    """A named blob handed to the archive packager."""

    model_config = ConfigDict(frozen=True)

    name: str
    data: bytes = Field(repr=False)


class WorkItemState(str, Enum):
    """Lifecycle state of a work item."""

    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not WorkItemState.PENDING


class WorkItem(BaseModel):
    """Lifecycle record of one submitted file."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source_name: str
    state: WorkItemState = WorkItemState.PENDING
    output: Optional[RenderedOutput] = None
    display_timestamp: Optional[str] = None
    is_fallback: Optional[bool] = None
    error: str = ""
    processing_time: float = 0.0

    def _ensure_pending(self, target: WorkItemState) -> None:
        if self.state is not WorkItemState.PENDING:
            raise InvalidStateTransition(
                f"Work item {self.id} ({self.source_name}) cannot move from "
                f"{self.state.value} to {target.value}"
            )

    def mark_done(
        self,
        output: RenderedOutput,
        display_timestamp: str,
        is_fallback: bool,
        processing_time: float = 0.0,
    ) -> None:
        """Transition pending -> done."""
        self._ensure_pending(WorkItemState.DONE)
        self.output = output
        self.display_timestamp = display_timestamp
        self.is_fallback = is_fallback
        self.processing_time = processing_time
        self.state = WorkItemState.DONE

    def mark_failed(self, error: str, processing_time: float = 0.0) -> None:
        """Transition pending -> failed."""
        self._ensure_pending(WorkItemState.FAILED)
        self.error = error
        self.processing_time = processing_time
        self.state = WorkItemState.FAILED

    @property
    def download_name(self) -> str:
        """``stamped_<stem>.<ext>``, extension following the output format."""
        stem = PurePath(self.source_name).stem or self.source_name
        extension = self.output.extension if self.output else "jpg"
        return f"stamped_{stem}.{extension}"


class BatchPartition(BaseModel):
    """Done / failed / pending view over a batch."""

    done: Tuple[WorkItem, ...] = ()
    failed: Tuple[WorkItem, ...] = ()
    pending: Tuple[WorkItem, ...] = ()


class BatchSummary(BaseModel):
    """Counts reported after a batch run."""

    total: int = 0
    done: int = 0
    failed: int = 0
    pending: int = 0
    processing_time: float = 0.0
    fallback_count: int = 0
    failures: List[str] = Field(default_factory=list)
