"""Tests for the CLI module."""

import re
from pathlib import Path
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from anikodik import __version__
from anikodik._version import FALLBACK_VERSION, get_version
from anikodik.api import AuthError, NetworkError, NotFoundError, RateLimitError
from anikodik.cli import main
from anikodik.config import AppConfig
from anikodik.errors import get_friendly_message
from anikodik.library import UserLibrary
from anikodik.models import Anime, AnimeVideo, CatalogPage
from anikodik.storage import MemoryStore, PersistenceError


def _invoke(args: list[str], service: MagicMock | None = None, library: UserLibrary | None = None):
    """Run the CLI with the service and library replaced."""
    runner = CliRunner()
    with (
        patch("anikodik.cli.get_config", return_value=AppConfig()),
        patch("anikodik.cli._make_service", return_value=service or MagicMock()),
        patch("anikodik.cli._make_library", return_value=library or UserLibrary(MemoryStore())),
    ):
        return runner.invoke(main, args)


def test_main_help() -> None:
    """Test that --help works."""
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "AniKodik" in result.output


def test_version() -> None:
    """Test that --version works."""
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert re.search(r"\d+\.\d+\.\d+", result.output)
    assert __version__ in result.output


def test_version_matches_project_metadata() -> None:
    """Test the fallback version matches the one declared in pyproject.toml."""
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    declared = re.search(r'^version = "([^"]+)"', pyproject.read_text(encoding="utf-8"), re.M)
    assert declared is not None
    assert declared.group(1) == FALLBACK_VERSION


def test_version_outside_installation() -> None:
    """Test an uninstalled distribution reports the fallback version."""
    assert get_version("anikodik-not-installed") == FALLBACK_VERSION


def test_commands_exist() -> None:
    """Test that every top-level command is registered."""
    for command in ("list", "show", "video", "watch-order", "recommend", "shelf", "collection",
                    "history", "comment", "rate", "cache", "config"):
        result = CliRunner().invoke(main, [command, "--help"])
        assert result.exit_code == 0, command


class TestCatalogCommands:
    """Tests for catalog commands."""

    def test_list_loads_pages(self) -> None:
        """Test --pages walks the cursor and merges duplicates."""
        service = MagicMock()
        service.fetch_page.side_effect = [
            CatalogPage(items=[Anime(id="serial-1", title="Naruto")], next_cursor="c1"),
            CatalogPage(
                items=[Anime(id="serial-9", title="naruto"), Anime(id="serial-2", title="Bleach")]
            ),
        ]

        result = _invoke(["list", "--pages", "3"], service)

        assert result.exit_code == 0
        assert "serial-1" in result.output
        assert "serial-2" in result.output
        assert "serial-9" not in result.output
        assert "End of results." in result.output
        assert service.fetch_page.call_count == 2
        assert service.fetch_page.call_args_list[1].args[0].cursor == "c1"

    def test_list_json(self) -> None:
        """Test JSON output of a listing."""
        service = MagicMock()
        service.fetch_page.return_value = CatalogPage(items=[Anime(id="serial-1", title="Monster")])

        result = _invoke(["list", "--search", "Monster", "--format", "json"], service)

        assert result.exit_code == 0
        assert '"id": "serial-1"' in result.output
        assert service.fetch_page.call_args.args[0].search == "Monster"

    def test_list_error_exit_code(self) -> None:
        """Test catalog failures print a friendly message and exit 1."""
        service = MagicMock()
        service.fetch_page.side_effect = NetworkError("timeout")

        result = _invoke(["list"], service)

        assert result.exit_code == 1
        assert "Could not reach the Kodik API" in result.output

    def test_show_not_found(self) -> None:
        """Test an unknown id exits 1."""
        service = MagicMock()
        service.fetch_by_id.side_effect = NotFoundError("Anime serial-404 not found")

        result = _invoke(["show", "serial-404"], service)

        assert result.exit_code == 1
        assert "Nothing found" in result.output

    def test_video(self) -> None:
        """Test the resolved player URL is printed."""
        service = MagicMock()
        service.fetch_video.return_value = AnimeVideo(
            url="https://kodik.info/seria/2/b/720p",
            total_seasons=1,
            total_episodes=12,
            current_season=1,
            current_episode=2,
        )

        result = _invoke(["video", "serial-1", "-e", "2"], service)

        assert result.exit_code == 0
        assert "https://kodik.info/seria/2/b/720p" in result.output
        service.fetch_video.assert_called_once_with("serial-1", 1, 2)

    def test_watch_order(self) -> None:
        """Test watch-order prints season numbers."""
        service = MagicMock()
        service.fetch_watch_order.return_value = [
            Anime(id="serial-1", title="Gintama [ТВ-1]", season_number=1),
            Anime(id="serial-2", title="Gintama [ТВ-2]", season_number=2),
        ]

        result = _invoke(["watch-order", "Gintama"], service)

        assert result.exit_code == 0
        assert result.output.index("serial-1") < result.output.index("serial-2")

    def test_watch_order_empty(self) -> None:
        """Test an empty watch order is reported."""
        service = MagicMock()
        service.fetch_watch_order.return_value = []

        result = _invoke(["watch-order", "Unknown"], service)

        assert result.exit_code == 0
        assert "No related entries" in result.output

    def test_genre_shelf_needs_genre(self) -> None:
        """Test the genre shelf requires --genre."""
        result = _invoke(["shelf", "genre"])
        assert result.exit_code == 2


class TestLibraryCommands:
    """Tests for collection, history, comment and rating commands."""

    def test_collection_add_and_list_ids(self) -> None:
        """Test adding to and listing the collection."""
        library = UserLibrary(MemoryStore())

        assert _invoke(["collection", "add", "serial-1"], library=library).exit_code == 0
        result = _invoke(["collection", "list", "--ids"], library=library)

        assert "serial-1" in result.output

    def test_collection_add_invalid(self) -> None:
        """Test invalid ids are refused."""
        result = _invoke(["collection", "add", "record-1"])
        assert result.exit_code == 1

    def test_history(self) -> None:
        """Test recording and listing history."""
        library = UserLibrary(MemoryStore())

        result = _invoke(["history", "add", "serial-1", "-s", "2", "-e", "3"], library=library)
        assert result.exit_code == 0
        assert "S2E3" in result.output

        result = _invoke(["history", "list", "--format", "json"], library=library)
        assert '"season": 2' in result.output

    def test_comment_and_reply(self) -> None:
        """Test posting a comment and a reply."""
        library = UserLibrary(MemoryStore())

        result = _invoke(["comment", "add", "serial-1", "Отлично", "--name", "Аня"], library=library)
        assert result.exit_code == 0
        parent = library.get_comments("serial-1")[0]

        result = _invoke(
            ["comment", "add", "serial-1", "Согласен", "--reply-to", parent.id], library=library
        )
        assert result.exit_code == 0

        result = _invoke(["comment", "list", "serial-1"], library=library)
        assert "Аня" in result.output
        assert "Согласен" in result.output

    def test_reply_to_unknown_comment(self) -> None:
        """Test replying to a missing comment exits 1."""
        result = _invoke(["comment", "add", "serial-1", "?", "--reply-to", "nope"])
        assert result.exit_code == 1

    def test_comment_like_once(self) -> None:
        """Test a comment can be liked once per user."""
        library = UserLibrary(MemoryStore())
        created = library.add_comment("serial-1", "u1", "Аня", "Текст")

        assert _invoke(["comment", "like", "serial-1", created.id], library=library).exit_code == 0
        result = _invoke(["comment", "like", "serial-1", created.id], library=library)

        assert "Already liked" in result.output
        assert library.get_comments("serial-1")[0].likes == 1

    def test_rate(self) -> None:
        """Test rating prints the new average."""
        library = UserLibrary(MemoryStore())
        library.rate_anime("other", "serial-1", 2)

        result = _invoke(["rate", "serial-1", "4"], library=library)

        assert result.exit_code == 0
        assert "3.0" in result.output

    def test_rate_out_of_range(self) -> None:
        """Test values outside 1..5 are rejected by the CLI."""
        assert _invoke(["rate", "serial-1", "9"]).exit_code == 2


class TestServiceWiring:
    """Tests for how commands build the catalog service."""

    def _run_with_client(self, args: list[str], client_cls: MagicMock, service_cls: MagicMock):
        with (
            patch("anikodik.cli.get_config", return_value=AppConfig()),
            patch("anikodik.cli._make_cache", return_value=MagicMock()),
            patch("anikodik.kodik.KodikClient", client_cls),
            patch("anikodik.service.AnimeService", service_cls),
        ):
            return CliRunner().invoke(main, args)

    def test_client_closed_after_command(self) -> None:
        """Test the HTTP client is closed once the command finishes."""
        client_cls = MagicMock()
        service_cls = MagicMock()
        service_cls.return_value.fetch_watch_order.return_value = []

        result = self._run_with_client(["watch-order", "Naruto"], client_cls, service_cls)

        assert result.exit_code == 0
        client_cls.return_value.close.assert_called_once()

    def test_client_closed_after_failure(self) -> None:
        """Test the HTTP client is closed when the command fails."""
        client_cls = MagicMock()
        service_cls = MagicMock()
        service_cls.return_value.fetch_by_id.side_effect = NetworkError("timeout")

        result = self._run_with_client(["show", "serial-1"], client_cls, service_cls)

        assert result.exit_code == 1
        client_cls.return_value.close.assert_called_once()


class TestConfigCommands:
    """Tests for config commands."""

    def test_config_path(self) -> None:
        """Test the config path command."""
        result = CliRunner().invoke(main, ["config", "path"])
        assert result.exit_code == 0
        assert ".anikodik" in result.output

    def test_config_init(self) -> None:
        """Test config init writes anikodik.ini once."""
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["config", "init", "--api-key", "abc"])
            assert result.exit_code == 0
            with open("anikodik.ini", encoding="utf-8") as f:
                assert "api_key = abc" in f.read()

            result = runner.invoke(main, ["config", "init"])
            assert result.exit_code == 1


class TestFriendlyMessages:
    """Tests for user-facing error messages."""

    def test_messages(self) -> None:
        """Test each error kind gets its own hint."""
        assert "token" in get_friendly_message(AuthError("401"))
        assert "30s" in get_friendly_message(RateLimitError(retry_after=30))
        assert "Nothing found" in get_friendly_message(NotFoundError("x"))
        assert "local store" in get_friendly_message(PersistenceError("disk"))
        assert get_friendly_message(ValueError("plain")) == "plain"
