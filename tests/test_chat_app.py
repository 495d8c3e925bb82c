"""Tests for the terminal front end wiring."""

from __future__ import annotations

import asyncio
import base64
import io
from pathlib import Path
from unittest.mock import patch

import pytest

from src.gemchat.app.chat_app import ChatApp, main, parse_args
from src.gemchat.models.exceptions import ProviderConfigurationError
from src.gemchat.models.session import ChatSession
from src.gemchat.services.chat_session_controller import GENERATION_ERROR_NOTICE
from src.gemchat.services.session_persistence_service import SessionPersistenceService
from tests.conftest import FakeGenerationClient, sources_fragment, text_fragment


@pytest.fixture
def settings_file(tmp_path: Path):
    settings_path = tmp_path / "user_settings.json"
    with patch("src.gemchat.services.user_settings_manager.SETTINGS_FILE", settings_path):
        yield settings_path


@pytest.fixture
def app(qapp, tmp_path: Path, settings_file: Path):
    args = parse_args(["--db", str(tmp_path / "chat.db")])
    chat_app = ChatApp(args, client=FakeGenerationClient(), out=io.StringIO())
    yield chat_app
    chat_app.persistence.close()


def _output(chat_app: ChatApp) -> str:
    return chat_app.out.getvalue()


def test_plain_line_streams_reply_and_citations(app: ChatApp) -> None:
    app.client.queue_reply(text_fragment("Paris"), text_fragment(" is sunny."), sources_fragment("https://w.example"))

    assert asyncio.run(app.handle_line("Weather in Paris?")) is True

    output = _output(app)
    assert "Paris is sunny.\n" in output
    assert "[1] https://w.example <https://w.example>" in output
    assert app.controller.sessions[0].title == "Weather in Paris?"


def test_failed_reply_prints_notice(app: ChatApp) -> None:
    app.client.queue_reply(error=RuntimeError("quota exceeded"))

    asyncio.run(app.handle_line("Hi"))

    assert GENERATION_ERROR_NOTICE in _output(app)


def test_session_commands(app: ChatApp) -> None:
    app.client.queue_reply(text_fragment("one"))
    app.client.queue_reply(text_fragment("two"))
    asyncio.run(app.handle_line("first chat"))
    asyncio.run(app.handle_line("/new"))
    asyncio.run(app.handle_line("second chat"))

    asyncio.run(app.handle_line("/sessions"))
    assert "  1. second chat (2 messages)" in _output(app)
    assert "   2. first chat (2 messages)" in _output(app)

    asyncio.run(app.handle_line("/open 2"))
    assert app.controller.sessions[1].id == app.controller.active_session_id
    assert "user> first chat\nmodel> one\n" in _output(app)

    asyncio.run(app.handle_line("/delete 1"))
    assert [session.title for session in app.controller.sessions] == ["first chat"]

    asyncio.run(app.handle_line("/open 9"))
    assert "No such conversation." in _output(app)


def test_model_command_lists_and_switches(app: ChatApp, settings_file: Path) -> None:
    asyncio.run(app.handle_line("/model"))
    assert "* gemini-2.5-flash" in _output(app)

    asyncio.run(app.handle_line("/model gemini-3-pro-preview"))
    assert app.controller.selected_model_id == "gemini-3-pro-preview"
    assert "gemini-3-pro-preview" in settings_file.read_text(encoding="utf-8")

    asyncio.run(app.handle_line("/model unknown"))
    assert "Unknown model unknown." in _output(app)


def test_attach_command_adds_images_to_next_message(app: ChatApp, tmp_path: Path) -> None:
    image = tmp_path / "photo.png"
    image.write_bytes(b"\x89PNG")
    app.client.queue_reply(text_fragment("A photo."))

    asyncio.run(app.handle_line(f"/attach {image}"))
    asyncio.run(app.handle_line("What is this?"))

    expected = "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode("ascii")
    assert app.client.sent[0][2] == [expected]
    assert app.pending_attachments == []


def test_quit_and_unknown_commands(app: ChatApp) -> None:
    assert asyncio.run(app.handle_line("/bogus")) is True
    assert "Unknown command /bogus" in _output(app)
    assert asyncio.run(app.handle_line("/quit")) is False


def test_main_reports_missing_api_key(tmp_path: Path, settings_file: Path, capsys) -> None:
    with patch("src.gemchat.app.chat_app.LoggingService.setup_logging"), patch(
        "src.gemchat.app.chat_app.GeminiProvider", side_effect=ProviderConfigurationError("No Gemini API key")
    ):
        exit_code = main(["--db", str(tmp_path / "chat.db")])

    assert exit_code == 1
    assert "No Gemini API key" in capsys.readouterr().err


def test_list_prints_saved_sessions_without_api_key(tmp_path: Path, settings_file: Path, capsys) -> None:
    db_path = tmp_path / "chat.db"
    seeded = SessionPersistenceService(db_path)
    seeded.save([ChatSession(title="Older", created_at=1), ChatSession(title="Newer", created_at=2)])
    seeded.close()

    with patch("src.gemchat.app.chat_app.LoggingService.setup_logging"), patch(
        "src.gemchat.app.chat_app.GeminiProvider", side_effect=ProviderConfigurationError("No Gemini API key")
    ) as provider, patch.object(SessionPersistenceService, "close", autospec=True) as close:
        exit_code = main(["--list", "--db", str(db_path)])

    assert exit_code == 0
    provider.assert_not_called()
    close.assert_called_once()
    output = capsys.readouterr().out
    assert output.index("Newer") < output.index("Older")
    assert "   1. Newer (0 messages)" in output
