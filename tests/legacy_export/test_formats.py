"""Tests for export format bundles and the NamedFile / ExportableItem models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from legacy_export.export.formats import (
    BEATMAP_SET,
    FORMATS,
    SKIN,
    ExportFormat,
    HasDisplayName,
    HasNamedFiles,
    get_format,
)
from legacy_export.models import ExportableItem, ExportRequest, NamedFile


class TestFormats:
    def test_builtin_extensions(self) -> None:
        assert BEATMAP_SET.file_extension == ".osz"
        assert SKIN.file_extension == ".osk"

    def test_registry(self) -> None:
        assert set(FORMATS) == {"beatmap", "skin"}
        assert get_format("skin") is SKIN

    def test_unknown_format(self) -> None:
        with pytest.raises(KeyError, match="Unknown export format 'replay'"):
            get_format("replay")

    def test_extension_needs_leading_dot(self) -> None:
        with pytest.raises(ValueError, match="must start with"):
            ExportFormat(name="bad", file_extension="zip")

    def test_default_accessors(self) -> None:
        item = ExportableItem(display_name="Thing", files=[NamedFile(filename="a", content_ref="ab")])
        assert BEATMAP_SET.get_display_name(item) == "Thing"
        assert list(BEATMAP_SET.get_files(item)) == item.files

    def test_item_satisfies_capability_protocols(self) -> None:
        item = ExportableItem(display_name="Thing")
        assert isinstance(item, HasNamedFiles)
        assert isinstance(item, HasDisplayName)


class TestModels:
    def test_named_file_requires_filename(self) -> None:
        with pytest.raises(ValidationError):
            NamedFile(filename="", content_ref="ab")

    def test_named_file_rejects_blank_filename(self) -> None:
        with pytest.raises(ValidationError, match="must not be blank"):
            NamedFile(filename="   ", content_ref="ab")

    @pytest.mark.parametrize("ref", ["", "NOT-A-HASH", "ABCD", "a", "../ab", "ab cd"])
    def test_named_file_rejects_malformed_content_ref(self, ref: str) -> None:
        with pytest.raises(ValidationError):
            NamedFile(filename="a", content_ref=ref)

    def test_named_file_accepts_sha256_ref(self) -> None:
        ref = "0123456789abcdef" * 4
        assert NamedFile(filename="a", content_ref=ref).content_ref == ref

    def test_named_file_is_frozen(self) -> None:
        f = NamedFile(filename="a", content_ref="ab")
        with pytest.raises(ValidationError):
            f.filename = "b"  # type: ignore[misc]

    def test_camel_case_accepted(self) -> None:
        req = ExportRequest.model_validate(
            {
                "format": "skin",
                "item": {
                    "displayName": "Skin",
                    "files": [{"filename": "skin.ini", "contentRef": "ab"}],
                },
            }
        )
        assert req.item.display_name == "Skin"
        assert req.item.files[0].content_ref == "ab"

    def test_snake_case_accepted(self) -> None:
        item = ExportableItem.model_validate({"display_name": "X", "files": []})
        assert item.display_name == "X"
