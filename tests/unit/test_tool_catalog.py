"""Tests for the tool catalog and the built-in filesystem tools."""

import json

import pytest
from cardflow.tools import ToolCatalog, default_catalog, parse_tool_output
from cardflow.tools.filesystem import enso_fs_list_directory


class TestCatalogLookup:
    """Plugin ownership of tool names."""

    def test_plugin_for(self, catalog):
        assert catalog.plugin_for("official_mail_fail") == "official_mail"
        assert catalog.plugin_for("nope") is None

    def test_names_for(self, catalog):
        assert catalog.names_for("official_mail") == [
            "official_mail_list_inbox",
            "official_mail_send_message",
            "official_mail_fail",
        ]

    def test_names_with_prefix(self, catalog):
        assert catalog.names_with_prefix("alpharank_") == ["alpharank_latest_predictions", "alpharank_market_regime"]

    def test_is_registered(self, catalog):
        assert catalog.is_registered("alpharank_market_regime")
        assert not catalog.is_registered(None)
        assert not catalog.is_registered("")

    def test_reregister_replaces(self, catalog):
        catalog.register_plugin("official_mail", ["official_mail_only"], lambda ctx: [])
        assert catalog.names_for("official_mail") == ["official_mail_only"]

    def test_unregister(self, catalog):
        assert catalog.unregister_plugin("official_mail") is True
        assert catalog.unregister_plugin("official_mail") is False
        assert catalog.plugin_for("official_mail_fail") is None

    def test_broken_factory_resolves_nothing(self):
        def factory(ctx):
            raise RuntimeError("no credentials")

        catalog = ToolCatalog()
        catalog.register_plugin("broken", ["broken_tool"], factory)
        assert catalog.resolve("broken_tool") is None

    def test_resolve_prefix_includes_schema(self, catalog):
        infos = {info.name: info for info in catalog.resolve_prefix("official_mail_")}
        send = infos["official_mail_send_message"]
        assert send.description.startswith("Send an email")
        assert "to" in send.parameters["properties"]


class TestExecuteToolDirect:
    """Direct execution and the ``[ERROR]`` convention."""

    async def test_success_parses_json(self, catalog):
        result = await catalog.execute_tool_direct("alpharank_market_regime", {})
        assert result.success is True
        assert result.data["regime"] == "risk_on"

    async def test_error_marker_is_failure(self, catalog):
        result = await catalog.execute_tool_direct("official_mail_fail", {})
        assert result.success is False
        assert result.error == "[ERROR] Mailbox unavailable"

    async def test_unknown_tool(self, catalog):
        result = await catalog.execute_tool_direct("nope", {})
        assert result.success is False
        assert "not found" in result.error

    async def test_invalid_params_are_failure(self, catalog):
        result = await catalog.execute_tool_direct("official_mail_send_message", {"subject": "no recipient"})
        assert result.success is False
        assert result.error


class TestParseToolOutput:
    def test_json(self):
        assert parse_tool_output('{"a": 1}') == {"a": 1}

    def test_plain_text_wrapped(self):
        assert parse_tool_output("hello") == {"rawOutput": "hello", "type": "text_result"}


class TestFilesystemTools:
    """Built-in filesystem plugin."""

    def test_default_catalog_has_filesystem(self):
        catalog = default_catalog()
        assert catalog.plugin_for("enso_fs_list_directory") == "enso_fs"

    def test_list_directory(self, tmp_path):
        (tmp_path / "notes.txt").write_text("hi")
        (tmp_path / "src").mkdir()
        (tmp_path / ".hidden").write_text("")

        data = json.loads(enso_fs_list_directory.invoke({"path": str(tmp_path)}))
        assert [item["name"] for item in data["items"]] == ["src", "notes.txt"]
        assert data["items"][0]["type"] == "directory"
        assert data["total"] == 2

    def test_list_directory_show_hidden(self, tmp_path):
        (tmp_path / ".hidden").write_text("")
        data = json.loads(enso_fs_list_directory.invoke({"path": str(tmp_path), "show_hidden": True}))
        assert data["total"] == 1

    @pytest.mark.parametrize("suffix", ["missing", "file.txt"])
    def test_list_directory_errors(self, tmp_path, suffix):
        (tmp_path / "file.txt").write_text("x")
        output = enso_fs_list_directory.invoke({"path": str(tmp_path / suffix)})
        assert output.startswith("[ERROR]")

    async def test_listing_classifies_as_directory_listing(self, tmp_path, registry):
        (tmp_path / "a.txt").write_text("x")
        catalog = default_catalog()
        result = await catalog.execute_tool_direct("enso_fs_list_directory", {"path": str(tmp_path)})
        signature = registry.detect_by_tool_name("enso_fs_list_directory")

        assert registry.detect_by_data_shape(result.data) == signature
        assert registry.normalize(signature, result.data)["rows"][0]["name"] == "a.txt"
