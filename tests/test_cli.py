"""Tests for the Help Center CLI.

Tests cover:
- Main app options (--help, --version) and status
- kb commands (list, current, select, articles, categories)
- Error reporting when no knowledge base can be resolved
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest
from httpx import ASGITransport
from typer.testing import CliRunner

from helpcenter.cli import app
from helpcenter.client import HelpCenterClient
from helpcenter.config.settings import settings
from helpcenter.main import create_app
from helpcenter.multitenancy import SELECTED_KB_KEY, FileSelectionStore
from helpcenter.session import KnowledgeBaseSession
from helpcenter.storage import InMemoryStorage


# ===========================================================================
# Fixtures
# ===========================================================================


@pytest.fixture
def runner() -> CliRunner:
    """Create a CliRunner for testing."""
    return CliRunner()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def selection_file(tmp_path):
    return tmp_path / "session.json"


@pytest.fixture
def in_process_api(storage, selection_file):
    """Route CLI sessions to an in-process app instead of API_BASE_URL."""
    api = create_app(storage)

    def open_session(user_id: str) -> KnowledgeBaseSession:
        client = HelpCenterClient("http://test", user_id, transport=ASGITransport(app=api))
        return KnowledgeBaseSession(client, FileSelectionStore(selection_file))

    with patch("helpcenter.cli.kb.open_session", side_effect=open_session) as mock:
        yield mock


def seed(storage: InMemoryStorage, user: str, *names: str):
    async def create():
        return [await storage.create_knowledge_base(user, name) for name in names]
    return asyncio.run(create())


# ===========================================================================
# Main app
# ===========================================================================


class TestMainApp:
    def test_help(self, runner):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "kb" in result.output

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_status_reads_selection_file(self, runner, monkeypatch, selection_file):
        FileSelectionStore(selection_file).set(SELECTED_KB_KEY, "kb-42")
        monkeypatch.setattr(settings, "SELECTION_FILE", selection_file)
        monkeypatch.setattr(settings, "API_BASE_URL", "http://api.example.com")

        result = runner.invoke(app, ["status", "--json"])
        assert result.exit_code == 0
        assert '"selectedKnowledgeBaseId": "kb-42"' in result.output
        assert "http://api.example.com" in result.output

    def test_status_without_selection(self, runner, monkeypatch, selection_file):
        monkeypatch.setattr(settings, "SELECTION_FILE", selection_file)
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Last active" in result.output

    def test_kb_requires_user(self, runner, monkeypatch):
        monkeypatch.delenv("HELPCENTER_USER", raising=False)
        result = runner.invoke(app, ["kb", "list"])
        assert result.exit_code != 0


# ===========================================================================
# kb commands
# ===========================================================================


class TestKbCommands:
    def test_list_marks_active(self, runner, storage, in_process_api):
        seed(storage, "alice", "Support", "Internal")
        result = runner.invoke(app, ["kb", "--user", "alice", "list"])
        assert result.exit_code == 0
        assert "Support" in result.output
        assert "Internal" in result.output
        assert "*" in result.output

    def test_list_provisions_for_new_user(self, runner, storage, in_process_api, selection_file):
        result = runner.invoke(app, ["kb", "--user", "newbie", "list"])
        assert result.exit_code == 0
        assert "My Knowledge Base" in result.output

        memberships = asyncio.run(storage.list_memberships("newbie"))
        assert len(memberships) == 1
        stored = json.loads(selection_file.read_text())
        assert stored[SELECTED_KB_KEY] == memberships[0].knowledge_base.id

    def test_current(self, runner, storage, in_process_api):
        kb, _ = seed(storage, "alice", "Support", "Internal")
        result = runner.invoke(app, ["kb", "--user", "alice", "current"])
        assert result.exit_code == 0
        assert kb.id in result.output
        assert "Support" in result.output

    def test_select_persists(self, runner, storage, in_process_api, selection_file):
        _, internal = seed(storage, "alice", "Support", "Internal")

        result = runner.invoke(app, ["kb", "--user", "alice", "select", internal.id])
        assert result.exit_code == 0
        assert json.loads(selection_file.read_text())[SELECTED_KB_KEY] == internal.id

        current = runner.invoke(app, ["kb", "--user", "alice", "current"])
        assert "Internal" in current.output

    def test_select_unknown(self, runner, storage, in_process_api, selection_file):
        kb, = seed(storage, "alice", "Support")
        result = runner.invoke(app, ["kb", "--user", "alice", "select", "nope"])
        assert result.exit_code == 1
        assert json.loads(selection_file.read_text())[SELECTED_KB_KEY] == kb.id

    def test_articles(self, runner, storage, in_process_api):
        kb, = seed(storage, "alice", "Support")
        asyncio.run(storage.create_article(kb.id, "Reset password", is_public=True))

        result = runner.invoke(app, ["kb", "--user", "alice", "articles"])
        assert result.exit_code == 0
        assert "Reset password" in result.output

    def test_articles_json(self, runner, storage, in_process_api):
        kb, = seed(storage, "alice", "Support")
        asyncio.run(storage.create_article(kb.id, "Reset password"))

        result = runner.invoke(app, ["kb", "--user", "alice", "articles", "--json"])
        assert result.exit_code == 0
        assert '"title": "Reset password"' in result.output

    def test_categories(self, runner, storage, in_process_api):
        kb, = seed(storage, "alice", "Support")
        asyncio.run(storage.create_category(kb.id, "Billing", "Invoices and payments"))

        result = runner.invoke(app, ["kb", "--user", "alice", "categories"])
        assert result.exit_code == 0
        assert "Billing" in result.output

    def test_tenant_not_ready_exits_nonzero(self, runner, in_process_api):
        result = runner.invoke(app, ["kb", "--user", "", "articles"])
        assert result.exit_code == 1
