"""Tests for command-line configuration."""

import logging
import socket

import pytest

from server import _parse_args, build_server, main, split_address


def test_split_address() -> None:
    assert split_address("localhost:8080") == ("localhost", 8080)
    assert split_address(":9000") == ("0.0.0.0", 9000)
    assert split_address("[::1]:443") == ("::1", 443)


@pytest.mark.parametrize("address", ["localhost", "localhost:http"])
def test_split_address_rejects_bad_values(address: str) -> None:
    with pytest.raises(ValueError):
        split_address(address)


def test_defaults_match_documented_flags() -> None:
    args = _parse_args([])

    assert args.addr == "localhost:8080"
    assert args.addr_tls == ""
    assert args.byte_range is False
    assert args.compress is False
    assert args.generate_index_pages is True
    assert args.vhost is False
    assert args.dir == "/usr/share/nginx/html"


def test_build_server_applies_flags(tmp_path) -> None:
    args = _parse_args(
        [
            "--addr",
            "127.0.0.1:0",
            "--addr-tls",
            "127.0.0.1:8443",
            "--dir",
            str(tmp_path),
            "--byte-range",
            "--compress",
            "--no-generate-index-pages",
            "--vhost",
        ]
    )

    server = build_server(args)
    options = server.static_handler.options

    assert (server.host, server.port) == ("127.0.0.1", 0)
    assert (server.tls_host, server.tls_port) == ("127.0.0.1", 8443)
    assert options.root == str(tmp_path)
    assert options.accept_byte_range is True
    assert options.compress is True
    assert options.generate_index_pages is False
    assert options.vhost is True


def test_tls_only_configuration_disables_plain_listener(tmp_path) -> None:
    server = build_server(_parse_args(["--addr", "", "--addr-tls", ":8443", "--dir", str(tmp_path)]))

    assert server.enable_http is False
    assert server.tls_port == 8443


def test_main_exits_with_error_when_tls_files_are_missing(
    tmp_path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.ERROR)

    exit_code = main(
        [
            "--addr",
            "127.0.0.1:0",
            "--addr-tls",
            "127.0.0.1:0",
            "--cert-file",
            str(tmp_path / "missing.pem"),
            "--key-file",
            str(tmp_path / "missing.key"),
            "--dir",
            str(tmp_path),
        ]
    )

    assert exit_code == 1
    assert "Failed to start listeners" in caplog.text


def test_main_exits_with_error_when_port_is_taken(
    tmp_path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.ERROR)
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]

        exit_code = main(["--addr", f"127.0.0.1:{port}", "--dir", str(tmp_path)])

    assert exit_code == 1
    assert "Failed to start listeners" in caplog.text


def test_main_rejects_missing_listeners(tmp_path) -> None:
    assert main(["--addr", "", "--dir", str(tmp_path)]) == 2
