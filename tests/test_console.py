"""Tests for the interactive peer console."""

from __future__ import annotations

import io
from collections.abc import Callable

import pytest
from structlog.testing import capture_logs

from tagshare.cli.console import Console
from tagshare.errors import LocalStorageError
from tagshare.index.server import IndexServer
from tagshare.peer.runtime import PeerRuntime

MakeRuntime = Callable[..., PeerRuntime]


@pytest.fixture
def alice(index_server: IndexServer, make_runtime: MakeRuntime) -> PeerRuntime:
    return make_runtime("alice", index_server.address)


def _console(text: str) -> Console:
    return Console(io.StringIO(text))


class TestDispatch:
    def test_eof_quits(self, alice: PeerRuntime) -> None:
        assert _console("").handle_input(alice) is False

    @pytest.mark.parametrize("line", ["Q\n", "q\n", "quit\n"])
    def test_quit(
        self, alice: PeerRuntime, line: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert _console(line).handle_input(alice) is False
        assert "deregistering any remaining content" in capsys.readouterr().out

    def test_blank_line_ignored(self, alice: PeerRuntime) -> None:
        assert _console("\n").handle_input(alice) is True

    def test_unknown_choice(
        self, alice: PeerRuntime, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert _console("x\n").handle_input(alice) is True
        assert "Unknown choice." in capsys.readouterr().out

    def test_menu(self, capsys: pytest.CaptureFixture[str]) -> None:
        _console("").show_menu()
        out = capsys.readouterr().out
        assert "=== P2P Peer Console ===" in out
        assert out.endswith("Select option (R/S/O/T/Q): ")


class TestCommands:
    def test_share(
        self,
        alice: PeerRuntime,
        index_server: IndexServer,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert _console("R\ndoc\ndoc\n").handle_input(alice) is True
        assert "Now serving 'doc' from 127.0.0.1:" in capsys.readouterr().out
        assert len(index_server.registry) == 1

    def test_share_long_tag_truncated(
        self, alice: PeerRuntime, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _console("r\nabcdefghijklm\nabcdefghij\n").handle_input(alice)
        assert "Now serving 'abcdefghij'" in capsys.readouterr().out

    def test_share_filename_mismatch(
        self,
        alice: PeerRuntime,
        index_server: IndexServer,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert _console("R\ndoc\nnotes.txt\n").handle_input(alice) is True
        assert "TAGSHARE_E002" in capsys.readouterr().out
        assert len(index_server.registry) == 0

    def test_share_empty_tag(
        self, alice: PeerRuntime, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _console("R\n\n").handle_input(alice)
        assert "Invalid content name." in capsys.readouterr().out

    def test_fetch_not_found(
        self, alice: PeerRuntime, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _console("S\nmissing\n").handle_input(alice)
        assert "TAGSHARE_E005" in capsys.readouterr().out

    def test_catalogue(
        self, alice: PeerRuntime, capsys: pytest.CaptureFixture[str]
    ) -> None:
        alice.advertise("doc")
        _console("O\n").handle_input(alice)
        out = capsys.readouterr().out
        assert "Catalogue reported by index" in out
        assert "Peer=alice  Content=doc  Addr=127.0.0.1:" in out

    def test_withdraw(
        self,
        alice: PeerRuntime,
        index_server: IndexServer,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        alice.advertise("doc")
        _console("T\ndoc\n").handle_input(alice)
        assert "Deregistered 'doc' from index." in capsys.readouterr().out
        assert len(index_server.registry) == 0

    def test_withdraw_unknown(
        self, alice: PeerRuntime, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _console("T\ndoc\n").handle_input(alice)
        assert "TAGSHARE_E005" in capsys.readouterr().out

    def test_catalogue_non_utf8_names(
        self,
        alice: PeerRuntime,
        index_server: IndexServer,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        with capture_logs():
            index_server.registry.register("\udcffbob", "doc", "127.0.0.1", 40001)
        _console("O\n").handle_input(alice)
        assert "Peer=\ufffdbob  Content=doc" in capsys.readouterr().out

    def test_fetch_unsavable(
        self,
        alice: PeerRuntime,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def refuse(content: str) -> None:
            raise LocalStorageError(f"Cannot save {content!r}")

        monkeypatch.setattr(alice, "discover_and_fetch", refuse)
        assert _console("S\ndoc\n").handle_input(alice) is True
        assert "TAGSHARE_E013" in capsys.readouterr().out
