"""TCP and Unix domain stream sockets with a small, explicit error model."""

from __future__ import annotations

import enum
import errno
import os
import socket
import struct
import sys

__all__ = [
    "Event",
    "Family",
    "SockError",
    "WouldBlock",
    "SockFd",
    "Sock",
    "notify_systemd",
]

_LISTEN_BACKLOG = 4096
_AF_UNIX = getattr(socket, "AF_UNIX", None)
_UNIX_PATH_MAX = 104 if sys.platform == "darwin" or "bsd" in sys.platform else 108
_IN_PROGRESS = frozenset(
    code
    for code in (
        errno.EINPROGRESS,
        errno.EAGAIN,
        errno.EWOULDBLOCK,
        getattr(errno, "WSAEWOULDBLOCK", None),
        getattr(errno, "WSAEINPROGRESS", None),
    )
    if code is not None
)


class Event(enum.IntFlag):
    """Readiness events a descriptor can be watched for."""

    NONE = 0
    READ = 1
    WRITE = 2
    EDGE = 4


class Family(enum.IntEnum):
    """Address families a socket can use."""

    INET = socket.AF_INET
    INET6 = socket.AF_INET6
    UNIX = _AF_UNIX if _AF_UNIX is not None else 1


class SockError(OSError):
    """A socket operation failed."""


class WouldBlock(SockError):
    """A non-blocking operation could not complete without waiting."""


def _would_block():
    return WouldBlock(errno.EAGAIN, os.strerror(errno.EAGAIN))


def _as_family(af):
    try:
        return Family(af)
    except ValueError:
        return af


class SockFd:
    """A descriptor together with its registered poll events and user type."""

    def __init__(self, fd=-1, type=0):
        self.fd = fd
        self.type = type
        self.op = Event.NONE

    def __repr__(self):
        return f"{type(self).__name__}(fd={self.fd}, type={self.type}, op={self.op!r})"


class Sock:
    """A stream socket that can listen, accept, connect, send and receive.

    Failures raise SockError and also keep the message in ``error``.
    Non-blocking operations that would wait raise WouldBlock.
    """

    def __init__(self, type=0, blocking=True, family=Family.INET):
        self.fdt = SockFd(-1, type)
        self.blocking = blocking
        self.family = _as_family(family)
        self.error = ""
        self._sock = None

    # -- internal helpers -------------------------------------------------

    def _fail(self, exc):
        text = exc.strerror or str(exc)
        self.error = text
        return SockError(exc.errno, text)

    def _fail_code(self, code):
        return self._fail(OSError(code, os.strerror(code)))

    def _attach(self, sock):
        self._close_quietly()
        self._sock = sock
        self.fdt.fd = sock.fileno()

    def _close(self):
        sock = self._sock
        if sock is None:
            return
        self._sock = None
        self.fdt.fd = -1
        sock.close()

    def _close_quietly(self):
        try:
            self._close()
        except OSError:
            pass

    def _require(self):
        if self._sock is None:
            raise self._fail_code(errno.EBADF)
        return self._sock

    def _resolve(self, host, port, family):
        try:
            return socket.getaddrinfo(host, port, family, socket.SOCK_STREAM)
        except OSError as exc:
            raise self._fail(exc) from exc
        except UnicodeError as exc:
            raise self._fail(OSError(errno.EINVAL, str(exc))) from exc

    def _apply_options(self, sock):
        sock.setblocking(self.blocking)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

    def _new_unix_socket(self):
        if _AF_UNIX is None:
            raise self._fail_code(errno.EAFNOSUPPORT)
        try:
            sock = socket.socket(_AF_UNIX, socket.SOCK_STREAM)
        except OSError as exc:
            raise self._fail(exc) from exc
        self._attach(sock)
        return sock

    def _bind_unix(self, path):
        sock = self._new_unix_socket()
        try:
            os.unlink(path)
        except OSError:
            pass
        try:
            sock.bind(path[: _UNIX_PATH_MAX - 1])
        except OSError as exc:
            self._close_quietly()
            raise self._fail(exc) from exc

    def _bind_inet(self, host, port):
        last = None
        for af, socktype, proto, _, addr in self._resolve(host, port, self.family):
            try:
                sock = socket.socket(af, socktype, proto)
            except OSError as exc:
                last = exc
                continue
            self._attach(sock)
            try:
                if self.family == Family.INET6:
                    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
                self._apply_options(sock)
                sock.bind(addr)
            except OSError as exc:
                self._close_quietly()
                raise self._fail(exc) from exc
            return
        self._close_quietly()
        raise self._fail(last or OSError(errno.EADDRNOTAVAIL, "no usable address"))

    def _bind_src(self, src_addr, src_port):
        sock = self._sock
        last = None
        for af, _, _, _, addr in self._resolve(src_addr, src_port, socket.AF_UNSPEC):
            if af != sock.family:
                last = OSError(errno.EAFNOSUPPORT, os.strerror(errno.EAFNOSUPPORT))
                continue
            try:
                sock.bind(addr)
                return
            except OSError as exc:
                last = exc
        raise self._fail(last or OSError(errno.EADDRNOTAVAIL, "no usable address"))

    def _connect_unix(self, path):
        sock = self._new_unix_socket()
        if len(os.fsencode(path)) >= _UNIX_PATH_MAX:
            self._close_quietly()
            raise self._fail_code(errno.EINVAL)
        try:
            sock.connect(path)
        except OSError as exc:
            self._close_quietly()
            raise self._fail(exc) from exc

    def _set_timeout(self, option, ms):
        sock = self._require()
        if sys.platform == "win32":
            value = struct.pack("I", ms & 0xFFFFFFFF)
        else:
            sec = int(ms / 1000)
            value = struct.pack("ll", sec, (ms - sec * 1000) * 1000)
        try:
            sock.setsockopt(socket.SOL_SOCKET, option, value)
        except OSError as exc:
            raise self._fail(exc) from exc

    # -- public API -------------------------------------------------------

    def fileno(self):
        """Return the underlying descriptor, or -1 if not open."""
        return self.fdt.fd

    def term(self):
        """Close the socket. Closing an already closed socket does nothing."""
        try:
            self._close()
        except OSError as exc:
            raise self._fail(exc) from exc

    def listen(self, host, port=None):
        """Bind to ``host``/``port`` (a path for Unix sockets) and listen."""
        self.error = ""
        if self.family == Family.UNIX:
            self._bind_unix(host)
        else:
            self._bind_inet(host, port)
        try:
            self._sock.listen(_LISTEN_BACKLOG)
        except OSError as exc:
            self._close_quietly()
            raise self._fail(exc) from exc

    def accept(self):
        """Accept one pending connection and return it as a new Sock."""
        listener = self._require()
        try:
            conn, _ = listener.accept()
        except BlockingIOError as exc:
            if not self.blocking:
                raise _would_block() from exc
            raise self._fail(exc) from exc
        except OSError as exc:
            raise self._fail(exc) from exc

        accepted = Sock(self.fdt.type, self.blocking, self.family)
        accepted._attach(conn)
        try:
            if self.family != Family.UNIX:
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            conn.setblocking(self.blocking)
        except OSError as exc:
            accepted._close_quietly()
            raise self._fail(exc) from exc
        return accepted

    def connect(self, dst_addr, dst_port=None, src_addr=None, src_port=None):
        """Connect to ``dst_addr``/``dst_port``, optionally from a source address.

        Addresses of the socket's own family are tried first. A non-blocking
        connect that is still in progress raises WouldBlock; call
        finish_connect() once the socket becomes writable.
        """
        if self.family == Family.UNIX:
            self._connect_unix(dst_addr)
            return

        infos = self._resolve(dst_addr, dst_port, socket.AF_UNSPEC)
        preferred = [info for info in infos if info[0] == self.family]
        others = [info for info in infos if info[0] != self.family]

        last = None
        for af, socktype, proto, _, addr in preferred + others:
            try:
                sock = socket.socket(af, socktype, proto)
            except OSError as exc:
                last = exc
                continue

            self.family = _as_family(af)
            self._attach(sock)
            try:
                self._apply_options(sock)
            except OSError as exc:
                self._close_quietly()
                raise self._fail(exc) from exc

            if src_addr is not None or src_port is not None:
                try:
                    self._bind_src(src_addr, src_port)
                except SockError:
                    self._close_quietly()
                    raise

            rc = sock.connect_ex(addr)
            if rc == 0:
                return
            if not self.blocking and rc in _IN_PROGRESS:
                raise _would_block()

            last = OSError(rc, os.strerror(rc))
            self._close_quietly()

        self._close_quietly()
        raise self._fail(last or OSError(errno.EADDRNOTAVAIL, "no usable address"))

    def finish_connect(self):
        """Complete a non-blocking connect, raising if it failed."""
        sock = self._require()
        try:
            err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            raise self._fail(exc) from exc
        if err != 0:
            raise self._fail_code(err)

    def set_blocking(self, blocking):
        """Switch the descriptor between blocking and non-blocking mode."""
        sock = self._require()
        try:
            sock.setblocking(blocking)
        except OSError as exc:
            raise self._fail(exc) from exc

    def set_rcvtimeo(self, ms):
        """Set the receive timeout in milliseconds."""
        self._set_timeout(socket.SO_RCVTIMEO, ms)

    def set_sndtimeo(self, ms):
        """Set the send timeout in milliseconds."""
        self._set_timeout(socket.SO_SNDTIMEO, ms)

    def send(self, data, flags=0):
        """Send ``data`` and return the number of bytes sent."""
        if not data:
            return 0
        sock = self._require()
        try:
            return sock.send(data, flags)
        except BlockingIOError as exc:
            raise _would_block() from exc
        except OSError as exc:
            raise self._fail(exc) from exc

    def recv(self, size, flags=0):
        """Receive up to ``size`` bytes; raises EOFError if the peer closed."""
        if size <= 0:
            return b""
        sock = self._require()
        try:
            data = sock.recv(size, flags)
        except BlockingIOError as exc:
            raise _would_block() from exc
        except OSError as exc:
            raise self._fail(exc) from exc
        if not data:
            raise EOFError("connection closed by peer")
        return data

    def local_str(self):
        """Return the local address as 'host:port' or a socket path."""
        sock = self._require()
        try:
            addr = sock.getsockname()
        except OSError as exc:
            raise self._fail(exc) from exc
        return _format_address(sock.family, addr)

    def remote_str(self):
        """Return the peer address as 'host:port' or a socket path."""
        sock = self._require()
        try:
            addr = sock.getpeername()
        except OSError as exc:
            raise self._fail(exc) from exc
        return _format_address(sock.family, addr)

    def describe(self):
        """Return 'Local(<addr>), Remote(<addr>) ' with empty parts on error."""
        parts = []
        for getter in (self.local_str, self.remote_str):
            try:
                parts.append(getter())
            except SockError:
                parts.append("")
        return f"Local({parts[0]}), Remote({parts[1]}) "

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.term()

    def __repr__(self):
        return (
            f"{type(self).__name__}(fd={self.fdt.fd}, family={self.family!r}, "
            f"blocking={self.blocking})"
        )


def _format_address(family, addr):
    if family in (socket.AF_INET, socket.AF_INET6):
        return f"{addr[0]}:{addr[1]}"
    if _AF_UNIX is not None and family == _AF_UNIX:
        if isinstance(addr, bytes):
            if addr.startswith(b"\0"):
                return ""
            return os.fsdecode(addr)
        if addr.startswith("\0"):
            return ""
        return addr
    return ""


def notify_systemd(msg):
    """Send a notification such as 'READY=1\\n' to the service manager.

    The destination comes from the NOTIFY_SOCKET environment variable; a
    leading '@' selects the abstract namespace. Raises SockError on failure.
    """
    path = os.environ.get("NOTIFY_SOCKET")
    if not path or path[0] not in "@/" or len(path) < 2:
        raise SockError(errno.EINVAL, "NOTIFY_SOCKET is missing or invalid")
    if _AF_UNIX is None:
        raise SockError(errno.EAFNOSUPPORT, os.strerror(errno.EAFNOSUPPORT))

    address = path[: _UNIX_PATH_MAX - 1]
    if address.startswith("@"):
        address = "\0" + address[1:]

    data = msg.encode() if isinstance(msg, str) else bytes(msg)
    flags = getattr(socket, "MSG_NOSIGNAL", 0)
    try:
        with socket.socket(_AF_UNIX, socket.SOCK_DGRAM) as sock:
            sock.sendto(data, flags, address)
    except OSError as exc:
        raise SockError(exc.errno, exc.strerror or str(exc)) from exc