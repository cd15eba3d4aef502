"""Tests for the shared data models."""

import pytest
from pydantic import ValidationError

from metastamp.core.exceptions import InvalidStateTransition
from metastamp.core.models import (
    Position,
    RenderedOutput,
    SourceFile,
    StyleConfig,
    WorkItem,
    WorkItemState,
)


def _output(format_type: str = "JPEG") -> RenderedOutput:
    return RenderedOutput(data=b"blob", handle="abc123", format=format_type, width=10, height=10)


class TestStyleConfig:
    """Tests for StyleConfig model."""

    def test_defaults(self):
        """Test the default stamp style."""
        style = StyleConfig()
        assert style.font_size == 120
        assert style.font_family == "Inter"
        assert style.font_color == "#FBBF24"
        assert style.stroke_color == "#000000"
        assert style.stroke_width == 5
        assert style.position is Position.BOTTOM_RIGHT
        assert (style.offset_x, style.offset_y) == (20, 20)
        assert style.shadow_enabled is False
        assert style.shadow_blur == 4
        assert style.shadow_color == "rgba(0, 0, 0, 0.5)"
        assert style.date_format == "YYYY-MM-DD HH:mm:ss"
        assert style.use_custom_format is False

    def test_accepts_stored_aliases(self):
        """Test construction from camelCase names."""
        style = StyleConfig.model_validate(
            {"fontSize": 80, "dropShadowEnabled": True, "position": "topLeft"}
        )
        assert style.font_size == 80
        assert style.shadow_enabled is True
        assert style.position is Position.TOP_LEFT

    def test_accepts_field_names(self):
        """Test construction from snake_case field names."""
        assert StyleConfig(font_size=64).font_size == 64

    def test_ignores_unknown_fields(self):
        """Test that unknown stored fields are dropped."""
        style = StyleConfig.model_validate({"fontWeight": "bold"})
        assert not hasattr(style, "fontWeight")

    def test_is_frozen(self):
        """Test that a style cannot be mutated in place."""
        style = StyleConfig()
        with pytest.raises(ValidationError):
            style.font_size = 10

    def test_rejects_non_positive_font_size(self):
        with pytest.raises(ValidationError):
            StyleConfig(font_size=0)

    def test_rejects_negative_stroke_width(self):
        with pytest.raises(ValidationError):
            StyleConfig(stroke_width=-1)

    def test_with_presets_combines_formats(self):
        """Test that presets produce the combined format."""
        style = StyleConfig().with_custom_format("custom").with_presets("DD/MM/YYYY", "hh:mm A")
        assert style.date_format == "DD/MM/YYYY hh:mm A"
        assert style.date_format_preset == "DD/MM/YYYY"
        assert style.time_format_preset == "hh:mm A"
        assert style.use_custom_format is False

    def test_with_presets_without_time(self):
        """Test that an empty time preset leaves the date alone."""
        style = StyleConfig().with_presets(time_preset="")
        assert style.date_format == "YYYY-MM-DD"

    def test_with_custom_format(self):
        style = StyleConfig().with_custom_format("DD MMM YYYY")
        assert style.date_format == "DD MMM YYYY"
        assert style.use_custom_format is True

    def test_copies_leave_original_untouched(self):
        original = StyleConfig()
        original.with_custom_format("YYYY")
        assert original.date_format == "YYYY-MM-DD HH:mm:ss"

    def test_to_storage_uses_aliases(self):
        """Test that stored preferences use camelCase names."""
        stored = StyleConfig().to_storage()
        assert stored["fontSize"] == 120
        assert stored["position"] == "bottomRight"
        assert stored["dropShadowColor"] == "rgba(0, 0, 0, 0.5)"
        assert "font_size" not in stored

    def test_storage_round_trip(self):
        style = StyleConfig(position=Position.TOP_RIGHT, stroke_width=0)
        assert StyleConfig.model_validate(style.to_storage()) == style


class TestPosition:
    """Tests for Position enum."""

    @pytest.mark.parametrize(
        "position, is_right, is_bottom",
        [
            (Position.TOP_LEFT, False, False),
            (Position.TOP_RIGHT, True, False),
            (Position.BOTTOM_LEFT, False, True),
            (Position.BOTTOM_RIGHT, True, True),
        ],
    )
    def test_corner_flags(self, position, is_right, is_bottom):
        assert position.is_right is is_right
        assert position.is_bottom is is_bottom


class TestSourceFile:
    """Tests for SourceFile model."""

    def test_image_content_type(self):
        assert SourceFile(name="a.jpg", data=b"", content_type="image/jpeg").is_image

    def test_non_image_content_type(self):
        assert not SourceFile(name="a.txt", data=b"", content_type="text/plain").is_image


class TestRenderedOutput:
    """Tests for RenderedOutput model."""

    @pytest.mark.parametrize(
        "format_type, content_type, extension",
        [("JPEG", "image/jpeg", "jpg"), ("PNG", "image/png", "png"), ("WEBP", "image/webp", "webp")],
    )
    def test_content_type_and_extension(self, format_type, content_type, extension):
        output = _output(format_type)
        assert output.content_type == content_type
        assert output.extension == extension


class TestWorkItem:
    """Tests for WorkItem lifecycle."""

    def test_new_item_is_pending(self):
        item = WorkItem(source_name="a.jpg")
        assert item.state is WorkItemState.PENDING
        assert item.output is None
        assert item.display_timestamp is None
        assert item.is_fallback is None
        assert len(item.id) == 32

    def test_ids_are_unique(self):
        assert WorkItem(source_name="a.jpg").id != WorkItem(source_name="a.jpg").id

    def test_mark_done(self):
        """Test the pending to done transition."""
        item = WorkItem(source_name="a.jpg")
        item.mark_done(_output(), "2024-01-01 00:00:00", is_fallback=True, processing_time=0.5)
        assert item.state is WorkItemState.DONE
        assert item.state.is_terminal
        assert item.display_timestamp == "2024-01-01 00:00:00"
        assert item.is_fallback is True
        assert item.processing_time == 0.5

    def test_mark_failed(self):
        """Test the pending to failed transition."""
        item = WorkItem(source_name="a.jpg")
        item.mark_failed("Could not load image")
        assert item.state is WorkItemState.FAILED
        assert item.error == "Could not load image"
        assert item.output is None

    def test_done_is_terminal(self):
        item = WorkItem(source_name="a.jpg")
        item.mark_done(_output(), "x", is_fallback=False)
        with pytest.raises(InvalidStateTransition):
            item.mark_failed("late failure")
        with pytest.raises(InvalidStateTransition):
            item.mark_done(_output(), "y", is_fallback=False)

    def test_failed_is_terminal(self):
        item = WorkItem(source_name="a.jpg")
        item.mark_failed("boom")
        with pytest.raises(InvalidStateTransition):
            item.mark_done(_output(), "x", is_fallback=False)

    def test_download_name_follows_output_format(self):
        item = WorkItem(source_name="IMG_0001.jpeg")
        item.mark_done(_output("PNG"), "x", is_fallback=False)
        assert item.download_name == "stamped_IMG_0001.png"

    def test_download_name_defaults_to_jpg(self):
        assert WorkItem(source_name="holiday.heic").download_name == "stamped_holiday.jpg"
