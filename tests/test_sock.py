import errno
import socket
import time

import pytest

from scnet.sock import Event, Family, Sock, SockError, WouldBlock, notify_systemd


def _listener(blocking=True, family=Family.INET, host="127.0.0.1"):
    server = Sock(0, blocking, family)
    server.listen(host, "0")
    return server


def _port_of(sock):
    return sock.local_str().rsplit(":", 1)[1]


def _retry(operation, *args, attempts=200):
    for _ in range(attempts):
        try:
            return operation(*args)
        except WouldBlock:
            time.sleep(0.01)
    raise AssertionError("operation kept blocking")


def _pair(server_blocking=True, client_family=Family.INET):
    server = _listener(blocking=server_blocking)
    client = Sock(0, True, client_family)
    client.connect("127.0.0.1", _port_of(server))
    accepted = _retry(server.accept)
    return server, client, accepted


def _term_all(*socks):
    for sock in socks:
        sock.term()
        assert sock.fileno() == -1


def test_new_sock_is_closed_and_carries_type():
    sock = Sock(7, True, Family.INET)
    assert sock.fileno() == -1
    assert sock.fdt.fd == -1
    assert sock.fdt.type == 7
    assert sock.fdt.op == Event.NONE


def test_ip4_send_and_receive():
    server = _listener()
    local = server.local_str()
    assert local.startswith("127.0.0.1:")
    assert server.describe() == f"Local({local}), Remote() "

    client = Sock(0, True, Family.INET)
    for set_timeout in (client.set_sndtimeo, client.set_rcvtimeo):
        with pytest.raises(SockError):
            set_timeout(10000)
        assert client.error != ""

    client.connect("127.0.0.1", _port_of(server))
    client.set_sndtimeo(10000)
    client.set_rcvtimeo(10000)
    assert client.send(b"test\0") == 5

    accepted = server.accept()
    assert accepted.recv(5) == b"test\0"
    assert accepted.describe() == f"Local({local}), Remote({client.local_str()}) "
    assert client.remote_str() == local

    _term_all(server, accepted, client)


def test_unix_send_and_receive(tmp_path):
    path = str(tmp_path / "x.sock")
    server = Sock(0, True, Family.UNIX)
    server.listen(path)
    assert server.describe() == f"Local({path}), Remote() "

    client = Sock(0, True, Family.UNIX)
    client.connect(path)
    assert client.send(b"test\0") == 5

    accepted = server.accept()
    assert accepted.family == Family.UNIX
    assert accepted.recv(5) == b"test\0"

    _term_all(server, accepted, client)


def test_unix_connect_path_too_long():
    sock = Sock(0, True, Family.UNIX)
    with pytest.raises(SockError) as info:
        sock.connect("/tmp/" + "long" * 40)
    assert info.value.errno == errno.EINVAL
    assert sock.fileno() == -1


@pytest.mark.parametrize(
    "dst_addr, dst_port, src_addr, src_port",
    [
        ("3127.0.0.1", "2131", None, None),
        ("3127.0.0.1", "2131", "127.90.1.1", "50"),
        ("131s::1", "2131", "::1", "50"),
        ("dsadas", "2131", "::1", "50"),
        ("dsadas", "2131", None, "50"),
        ("127.0.0.1", "2131", "s", None),
        ("127.0.01", "2131", "100.0.0.0", None),
    ],
)
def test_connect_failures(dst_addr, dst_port, src_addr, src_port):
    sock = Sock(0, False, Family.INET)
    with pytest.raises(SockError):
        sock.connect(dst_addr, dst_port, src_addr, src_port)
    _term_all(sock)


@pytest.mark.parametrize(
    "operation",
    [
        lambda sock: sock.finish_connect(),
        lambda sock: sock.send(b"test\0"),
        lambda sock: sock.recv(5),
    ],
)
def test_io_on_unconnected_sock_fails(operation):
    sock = Sock(0, False, Family.INET)
    with pytest.raises(SockError):
        operation(sock)
    assert sock.fileno() == -1


def test_blocking_connect_refused():
    server = _listener()
    port = _port_of(server)
    server.term()

    client = Sock(0, True, Family.INET)
    with pytest.raises(SockError) as info:
        client.connect("127.0.0.1", port)
    assert not isinstance(info.value, WouldBlock)
    assert client.fileno() == -1
    assert client.error != ""


def test_nonblocking_connect_and_finish():
    server = _listener(blocking=False)
    client = Sock(0, False, Family.INET)
    try:
        client.connect("127.0.0.1", _port_of(server))
    except WouldBlock as exc:
        assert exc.errno == errno.EAGAIN

    accepted = _retry(server.accept)
    assert client.finish_connect() is None
    assert client.remote_str() == server.local_str()

    _term_all(server, client, accepted)


def test_accept_without_pending_connection_would_block():
    server = _listener(blocking=False)
    with pytest.raises(WouldBlock) as info:
        server.accept()
    assert info.value.errno == errno.EAGAIN
    server.term()


def test_accepted_socket_inherits_nonblocking_mode():
    server, client, accepted = _pair(server_blocking=False)

    with pytest.raises(WouldBlock):
        accepted.recv(1)

    assert client.send(b"d") == 1
    assert _retry(accepted.recv, 1) == b"d"

    _term_all(server, client, accepted)


def test_recv_after_peer_close_raises_eof():
    server, client, accepted = _pair()
    client.term()

    with pytest.raises(EOFError):
        accepted.recv(1)

    _term_all(server, accepted)


def test_receive_timeout_raises_would_block():
    server, client, accepted = _pair()
    accepted.set_rcvtimeo(100)

    with pytest.raises(WouldBlock):
        accepted.recv(1)

    _term_all(server, client, accepted)


def test_empty_send_and_nonpositive_recv():
    sock = Sock(0, True, Family.INET)
    assert sock.send(b"") == 0
    assert sock.recv(0) == b""
    assert sock.recv(-33) == b""


def test_connect_falls_back_to_other_family():
    server, client, accepted = _pair(client_family=Family.INET6)
    assert client.family == Family.INET
    assert client.send(b"x") == 1
    assert accepted.recv(1) == b"x"
    _term_all(server, client, accepted)


@pytest.mark.parametrize(
    "family, host, port",
    [
        (Family.INET, "127.0.0.1x", "8004"),
        (Family.UNIX, "/", "8004"),
        (Family.INET6, "/", "8004"),
        (Family.INET6, "0.0.0.0", "99999"),
        (Family.INET, "0.0.0.3", "99999"),
    ],
)
def test_listen_errors(family, host, port):
    with pytest.raises(SockError):
        Sock(0, True, family).listen(host, port)


@pytest.mark.parametrize("name", ["/", "missing.sock"])
def test_unix_connect_errors(tmp_path, name):
    target = name if name == "/" else str(tmp_path / name)
    with pytest.raises(SockError):
        Sock(0, True, Family.UNIX).connect(target, "8006")


def test_addresses_of_closed_socket():
    sock = Sock(0, True, Family.INET)
    assert sock.describe() == "Local(), Remote() "
    for operation in (sock.local_str, sock.remote_str, lambda: sock.set_blocking(True)):
        with pytest.raises(SockError):
            operation()


def test_term_twice_and_context_manager():
    with Sock(0, True, Family.INET) as sock:
        sock.listen("127.0.0.1", "0")
        fd = sock.fileno()
        assert fd >= 0
        assert fd == sock.fdt.fd
    assert sock.fileno() == -1
    _term_all(sock)


@pytest.mark.parametrize("value", [None, "x", "/", "@", ""])
def test_notify_systemd_invalid_env(monkeypatch, value):
    if value is None:
        monkeypatch.delenv("NOTIFY_SOCKET", raising=False)
    else:
        monkeypatch.setenv("NOTIFY_SOCKET", value)
    with pytest.raises(SockError) as info:
        notify_systemd("test")
    assert info.value.errno == errno.EINVAL


@pytest.mark.parametrize("target", ["nobody", "@tmp/" + "x" * 140])
def test_notify_systemd_unreachable(monkeypatch, tmp_path, target):
    value = target if target.startswith("@") else str(tmp_path / target)
    monkeypatch.setenv("NOTIFY_SOCKET", value)
    with pytest.raises(SockError):
        notify_systemd("test")


def test_notify_systemd_delivers_message(monkeypatch, tmp_path):
    path = str(tmp_path / "notify")
    with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as receiver:
        receiver.bind(path)
        monkeypatch.setenv("NOTIFY_SOCKET", path)
        assert notify_systemd("READY=1\n") is None
        assert receiver.recv(64) == b"READY=1\n"