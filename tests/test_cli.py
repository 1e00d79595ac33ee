import os
import signal
import socket
import subprocess
import sys
import time
from pathlib import Path
from urllib.error import URLError
from urllib.request import Request, urlopen

import pytest

from http_echo.core.net import listener as listener_module
from http_echo.core.version import HUMAN_VERSION
from http_echo.runner import cli
from http_echo.runner.server import SHUTDOWN_TIMEOUT

ROOT_DIR = Path(__file__).resolve().parents[1]


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_version_exits_zero(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-version"])

    assert excinfo.value.code == 0
    assert capsys.readouterr().out.strip() == HUMAN_VERSION


def test_missing_text_exits_127_before_binding(capsys, monkeypatch):
    monkeypatch.delenv("ECHO_TEXT", raising=False)

    def must_not_bind(*args, **kwargs):
        raise AssertionError("listener should not be created")

    monkeypatch.setattr(cli, "create_listener", must_not_bind)

    with pytest.raises(SystemExit) as excinfo:
        cli.main([])

    assert excinfo.value.code == 127
    assert "Missing -text option or ECHO_TEXT env var!" in capsys.readouterr().err


def test_extra_arguments_exit_127(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-text", "hello", "surplus"])

    assert excinfo.value.code == 127
    assert "Too many arguments!" in capsys.readouterr().err


def test_listener_failure_exits_1(capsys):
    taken = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    taken.bind(("127.0.0.1", 0))
    taken.listen(1)
    try:
        port = taken.getsockname()[1]
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["-text", "hello", "-listen", f"127.0.0.1:{port}"])
    finally:
        taken.close()

    assert excinfo.value.code == 1
    assert "Failed to create listener" in capsys.readouterr().err


def test_refused_transparent_option_exits_1(capsys, monkeypatch):
    original = socket.socket.setsockopt

    def refuse(self, level, option, value, *args):
        if option == getattr(socket, "IP_TRANSPARENT", listener_module._LINUX_IP_TRANSPARENT) and level != socket.SOL_SOCKET:
            raise PermissionError(1, "Operation not permitted")
        return original(self, level, option, value, *args)

    monkeypatch.setattr(socket.socket, "setsockopt", refuse)

    def must_not_serve(*args, **kwargs):
        raise AssertionError("server should not start")

    monkeypatch.setattr(cli, "serve", must_not_serve)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-text", "hello", "-listen", "127.0.0.1:0", "-transparent"])

    assert excinfo.value.code == 1
    assert "Failed to create listener" in capsys.readouterr().err


@pytest.mark.integration
@pytest.mark.skipif(sys.platform == "win32", reason="signaux POSIX requis")
@pytest.mark.parametrize("sig", [signal.SIGINT, signal.SIGTERM])
def test_signal_exits_with_code_2(sig):
    port = _free_port()
    env = dict(os.environ, PYTHONPATH=str(ROOT_DIR), ECHO_TEXT="hello")
    proc = subprocess.Popen(
        [sys.executable, "-m", "http_echo.runner", "-listen", f"127.0.0.1:{port}", "-status-code", "201"],
        cwd=ROOT_DIR,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )

    try:
        deadline = time.time() + 15
        while True:
            try:
                req = Request(f"http://127.0.0.1:{port}/", method="GET")
                with urlopen(req, timeout=2) as resp:  # nosec - URL locale contrôlée
                    assert resp.status == 201
                    assert resp.read().decode("utf-8") == "hello\n"
                break
            except (URLError, ConnectionError):
                if time.time() > deadline or proc.poll() is not None:
                    raise
                time.sleep(0.1)

        proc.send_signal(sig)
        stdout, stderr = proc.communicate(timeout=SHUTDOWN_TIMEOUT + 5)
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()

    assert proc.returncode == 2
    assert '"GET / HTTP/1.1" 201' in stdout
    assert "received interrupt, shutting down..." in stderr
    with pytest.raises(OSError):
        socket.create_connection(("127.0.0.1", port), timeout=1).close()
