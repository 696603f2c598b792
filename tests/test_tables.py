"""Tests for the table registry."""

import pytest

from pgmirror.config.tables import (
    DEFAULT_TABLES,
    ColumnKind,
    ColumnSpec,
    TableRegistry,
    TableSyncConfig,
    default_registry,
)
from pgmirror.exceptions import ConfigurationError, UnknownTableError


def _config(table_name="items", channel="sync_items", primary_key="id", columns=("id", "name")):
    return TableSyncConfig(
        table_name=table_name,
        channel=channel,
        primary_key=primary_key,
        columns=tuple(ColumnSpec(name) for name in columns)
    )


class TestTableSyncConfig:

    def test_columns_become_tuple(self):
        config = TableSyncConfig("items", "sync_items", "id", [ColumnSpec("id")])
        assert isinstance(config.columns, tuple)

    def test_primary_key_must_be_a_column(self):
        with pytest.raises(ConfigurationError, match="Primary key"):
            _config(primary_key="uuid")

    def test_duplicate_columns_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            _config(columns=("id", "name", "name"))

    @pytest.mark.parametrize("name", ["bad-name", "1abc", "drop table;", ""])
    def test_invalid_identifiers_rejected(self, name):
        with pytest.raises(ConfigurationError):
            _config(columns=("id", name))

    def test_empty_channel_rejected(self):
        with pytest.raises(ConfigurationError):
            _config(channel="")

    def test_column_kinds(self):
        config = TableSyncConfig(
            "items", "sync_items", "id",
            (ColumnSpec("id"), ColumnSpec("tags", ColumnKind.ARRAY), ColumnSpec("meta", ColumnKind.JSON))
        )
        assert config.column_names == ["id", "tags", "meta"]
        assert [column.kind for column in config.columns] == [
            ColumnKind.SCALAR, ColumnKind.ARRAY, ColumnKind.JSON
        ]

    def test_from_dict_defaults(self):
        config = TableSyncConfig.from_dict("items", {
            "columns": ["id", {"name": "tags", "kind": "array"}]
        })
        assert config.channel == "sync_items"
        assert config.primary_key == "id"
        assert config.columns[1] == ColumnSpec("tags", ColumnKind.ARRAY)

    def test_from_dict_invalid_kind(self):
        with pytest.raises(ConfigurationError, match="Invalid column kind"):
            TableSyncConfig.from_dict("items", {"columns": ["id", {"name": "x", "kind": "blob"}]})

    def test_to_dict(self):
        data = _config().to_dict()
        assert data == {
            "table_name": "items",
            "channel": "sync_items",
            "primary_key": "id",
            "columns": [
                {"name": "id", "kind": "scalar"},
                {"name": "name", "kind": "scalar"},
            ]
        }


class TestTableRegistry:

    def test_default_registry_tables(self, registry):
        assert registry.table_names() == [
            "conversations",
            "emotion_states",
            "user_memories",
            "conversation_analysis",
            "user_relationships",
        ]
        assert len(registry) == len(DEFAULT_TABLES)

    def test_default_channels_follow_table_names(self, registry):
        for config in registry:
            assert config.channel == f"sync_{config.table_name}"

    def test_default_primary_keys(self, registry):
        assert registry.get("emotion_states").primary_key == "user_id"
        assert registry.get("user_relationships").primary_key == "user_id"
        assert registry.get("conversations").primary_key == "id"

    def test_default_array_columns(self, registry):
        def arrays(table_name):
            return [c.name for c in registry.get(table_name).columns if c.kind == ColumnKind.ARRAY]

        assert arrays("user_memories") == ["keywords"]
        assert arrays("conversation_analysis") == ["keywords"]
        assert arrays("user_relationships") == [
            "known_interests", "avoided_topics", "positive_triggers", "negative_triggers"
        ]

    def test_for_channel(self, registry):
        assert registry.for_channel("sync_user_memories").table_name == "user_memories"
        assert registry.for_channel("sync_missing") is None

    def test_get_unknown_table(self, registry):
        with pytest.raises(UnknownTableError):
            registry.get("missing")

    def test_contains(self, registry):
        assert "conversations" in registry
        assert "missing" not in registry

    def test_duplicate_table_rejected(self):
        with pytest.raises(ConfigurationError, match="registered twice"):
            TableRegistry([_config(), _config(channel="other")])

    def test_duplicate_channel_rejected(self):
        with pytest.raises(ConfigurationError, match="Channel"):
            TableRegistry([_config(), _config(table_name="others")])

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text(
            "tables:\n"
            "  notes:\n"
            "    columns: [id, body, {name: tags, kind: array}]\n"
            "  profiles:\n"
            "    channel: profile_changes\n"
            "    primary_key: user_id\n"
            "    columns: [user_id, bio]\n"
        )

        registry = TableRegistry.from_yaml(path)

        assert registry.table_names() == ["notes", "profiles"]
        assert registry.get("notes").channel == "sync_notes"
        assert registry.for_channel("profile_changes").primary_key == "user_id"

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            TableRegistry.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_without_tables(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text("other: 1\n")
        with pytest.raises(ConfigurationError, match="No tables"):
            TableRegistry.from_yaml(path)

    def test_default_registry_is_fresh(self):
        assert default_registry() is not default_registry()
