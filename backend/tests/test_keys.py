"""
Unit tests for storage key construction.
"""

import pytest

from portal.errors import ValidationError
from portal.services.keys import (
    build_address,
    build_key,
    owner_prefix,
    sanitize_item_name,
    sanitize_owner_id,
)


class TestSanitizeOwnerId:

    @pytest.mark.parametrize("owner_id", ["user-123", "user_1", "ABCdef09"])
    def test_valid_ids_pass_through(self, owner_id):
        assert sanitize_owner_id(owner_id) == owner_id

    @pytest.mark.parametrize(
        "owner_id",
        ["../bad", "a/b", "..", "user 1", " user", "user\n", "user\t1", "a\\b", "user@x"],
    )
    def test_unsafe_ids_are_rejected(self, owner_id):
        with pytest.raises(ValidationError):
            sanitize_owner_id(owner_id)

    @pytest.mark.parametrize("owner_id", ["", "   ", None, 123])
    def test_empty_or_non_string_rejected(self, owner_id):
        with pytest.raises(ValidationError):
            sanitize_owner_id(owner_id)


class TestSanitizeItemName:

    def test_path_traversal_keeps_basename(self):
        assert sanitize_item_name("../../secret.txt") == "secret.txt"

    def test_windows_separators_are_stripped(self):
        assert sanitize_item_name("..\\..\\boot.ini") == "boot.ini"

    def test_special_characters_replaced(self):
        assert sanitize_item_name("My Contract (2024).pdf") == "My Contract _2024_.pdf"

    def test_control_whitespace_becomes_space_then_trimmed(self):
        assert sanitize_item_name("\tinvoice\r\n.pdf") == "invoice  .pdf"

    def test_non_ascii_replaced(self):
        assert sanitize_item_name("peynir_ü.pdf") == "peynir__.pdf"

    @pytest.mark.parametrize("name", ["", "   ", "dir/", "..", "../..", "\r\n"])
    def test_empty_after_sanitization_rejected(self, name):
        with pytest.raises(ValidationError):
            sanitize_item_name(name)


class TestBuildAddress:

    def test_default_folder(self):
        address = build_address("u1", "id.pdf", namespace="bucket")
        assert address.namespace == "bucket"
        assert address.path == "documents/u1/id.pdf"
        assert address.name == "id.pdf"

    def test_folder_override(self):
        assert build_key("u1", "id.pdf", folder="kyc") == "kyc/u1/id.pdf"

    def test_nested_folder_override(self):
        assert build_key("u1", "id.pdf", folder="archive/2024") == "archive/2024/u1/id.pdf"

    @pytest.mark.parametrize("folder", ["../other", "a//b", "a b", ""])
    def test_unsafe_folder_rejected(self, folder):
        with pytest.raises(ValidationError):
            build_key("u1", "id.pdf", folder=folder)

    def test_traversal_name_yields_basename_as_final_segment(self):
        address = build_address("user_1", "../../secret.txt")
        assert address.path.split("/")[-1] == "secret.txt"
        assert address.path == "documents/user_1/secret.txt"

    def test_is_deterministic(self):
        first = build_address("u1", "Report (final).pdf", "kyc", "bucket")
        second = build_address("u1", "Report (final).pdf", "kyc", "bucket")
        assert first == second
        assert first.path.encode() == second.path.encode()

    def test_address_is_immutable(self):
        address = build_address("u1", "a.pdf")
        with pytest.raises(Exception):
            address.path = "documents/u2/a.pdf"

    def test_owner_prefix(self):
        assert owner_prefix("u1") == "documents/u1/"
        assert owner_prefix("u1", "kyc") == "kyc/u1/"
