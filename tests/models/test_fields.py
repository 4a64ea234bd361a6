"""Tests for field annotations and ModelDescriptor construction."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from ormspine.core.errors import ModelDefinitionError
from ormspine.models.fields import (
    COLUMN_KEY,
    MODE_INSERT,
    MODE_LINK,
    MODE_SELECT_ONLY,
    MODE_UPDATE,
    column,
    decoder_for,
    describe,
    parse_mode,
)
from tests._support.records import (
    AIModel,
    NotADataclass,
    Preferences,
    Realm,
    Tags,
    UserProfile,
    Website,
)


@dataclass
class PlainValue:
    value: int = 0


@dataclass
class BadLink:
    target: PlainValue | None = column("p", mode="l")
    broken: int | None = column("x", mode="link")


@dataclass
class ScalarLink:
    count: int | None = column("c", mode="l")


class TestParseMode:
    def test_empty(self):
        assert parse_mode("") == frozenset()

    def test_flags(self):
        assert parse_mode("i,u") == {MODE_INSERT, MODE_UPDATE}

    def test_whitespace_and_case(self):
        assert parse_mode(" I , s ") == {MODE_INSERT, MODE_SELECT_ONLY}

    def test_link_alias(self):
        assert parse_mode("link") == {MODE_LINK}

    def test_unknown_flag(self):
        with pytest.raises(ModelDefinitionError, match="unknown mode flag"):
            parse_mode("i,x")


class TestColumn:
    def test_metadata_attached(self):
        f = column("key", mode="i,u", default_value="NULL")
        assert f.metadata[COLUMN_KEY] == "key"
        assert f.default is None

    def test_explicit_default(self):
        profile = UserProfile()
        assert profile.status == "active"


class TestDescribe:
    def test_accessors_in_declaration_order(self):
        descriptor = describe(AIModel)
        assert [f.name for f in descriptor.fields] == ["uuid", "key", "name"]
        assert list(descriptor.columns) == ["uuid", "key", "name"]

    def test_modes(self):
        descriptor = describe(Realm)
        assert descriptor.columns["uuid"].insertable
        assert not descriptor.columns["uuid"].updatable
        assert descriptor.columns["updated_at"].updatable
        assert descriptor.columns["updated_at"].default_value == "NOW()"

    def test_select_only_excluded_from_writes(self):
        version = describe(Realm).columns["version"]
        assert not version.insertable
        assert not version.updatable

    def test_linked_field(self):
        descriptor = describe(Website)
        link = descriptor.links["r"]
        assert link.is_linked
        assert link.name == "realm"
        assert link.column is None
        assert link.nested_type is Realm

    def test_getter_and_setter(self):
        descriptor = describe(AIModel)
        record = AIModel(key="gpt")
        accessor = descriptor.field("key")
        assert accessor.getter(record) == "gpt"
        accessor.setter(record, "llama")
        assert record.key == "llama"

    def test_new_instance_applies_defaults(self):
        profile = describe(UserProfile).new_instance()
        assert isinstance(profile, UserProfile)
        assert profile.uuid is None
        assert profile.status == "active"

    def test_decoders(self):
        descriptor = describe(UserProfile)
        assert descriptor.columns["tags"].decoder == Tags.scan_json
        assert descriptor.columns["preferences"].decoder == Preferences.model_validate
        assert descriptor.columns["email"].decoder is None

    def test_not_a_dataclass(self):
        with pytest.raises(ModelDefinitionError, match="not a dataclass"):
            describe(NotADataclass)

    def test_instance_rejected(self):
        with pytest.raises(ModelDefinitionError):
            describe(AIModel())

    def test_link_to_non_dataclass(self):
        with pytest.raises(ModelDefinitionError, match="linked field must be a dataclass"):
            describe(BadLink)

    def test_link_to_scalar(self):
        with pytest.raises(ModelDefinitionError):
            describe(ScalarLink)

    def test_fields_without_metadata_ignored(self):
        assert describe(PlainValue).fields == ()


class TestDecoderFor:
    def test_optional_unwrapped(self):
        assert decoder_for(Tags | None) == Tags.scan_json

    def test_plain_types(self):
        assert decoder_for(str) is None
        assert decoder_for(int | None) is None
