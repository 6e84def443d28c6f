# scnet

Small, dependency-free building blocks for network services in Python.

- `scnet.sock` provides `Sock`, a TCP (IPv4/IPv6) or Unix stream socket.
  It can listen, accept, connect (blocking or non-blocking, with an
  optional source address), send and receive, and it can describe its
  local and remote addresses. The module also has `notify_systemd` for
  the `NOTIFY_SOCKET` readiness protocol.
- `scnet.signals` provides `SignalHandler` for SIGINT/SIGTERM shutdown and
  for fatal-signal crash reports. It also has a small printf-style
  formatter, `format_message`, and `log`, which writes straight to a
  file descriptor.
- `scnet.ringqueue` provides `RingQueue`, a double-ended queue on a
  power-of-two ring buffer.
- `scnet.util` provides `is_pow2`, `to_pow2`, the human-readable size
  helpers `bytes_to_size` and `size_to_bytes`, and `Rc4Random`, a seeded
  RC4 byte stream.

## Installation

```
pip install scnet
```

To run the test suite:

```
pip install "scnet[test]"
pytest
```

## Sizes and powers of two

```python
from scnet.util import bytes_to_size, size_to_bytes, is_pow2, to_pow2

bytes_to_size(313)         # "313 B"
bytes_to_size(2 * 1024)    # "2.00 KB"
bytes_to_size(2**64 - 1)   # "16.00 EB"
size_to_bytes("1kb")       # 1024
size_to_bytes("1m")        # 1048576
is_pow2(1024)              # True
to_pow2(1023)              # 1024
to_pow2(0)                 # 1
```

`size_to_bytes` accepts a decimal number followed by an optional unit:
`b`, `k`, `m`, `g`, `t`, `p` or `e`. Any unit except `b` may also be
followed by `b`, and units are case-insensitive. The function raises
`ValueError` when the text is malformed or when the result does not fit
in a signed 64-bit integer. For example, `"22eb"` raises.

`bytes_to_size` and `to_pow2` take unsigned 64-bit values. Both raise
`ValueError` for a value outside that range.

## Deterministic random bytes

`Rc4Random` takes a 256-byte seed and raises `ValueError` for any other
length. Two generators with the same seed produce the same stream.

```python
import os
from scnet.util import Rc4Random

rnd = Rc4Random(os.urandom(256))
chunk = rnd.read(16)     # 16 bytes
rnd.read(0)              # b""
```

## Ring queue

```python
from scnet.ringqueue import RingQueue

q = RingQueue()
q.add_last(2)
q.add_last(3)
q.add_last(4)
q.add_first(1)

list(q)          # [1, 2, 3, 4]
q[0]             # 1
q.peek_last()    # 4
q.del_last()     # 4
q.del_first()    # 1
len(q)           # 2
q.capacity()     # 8
```

The buffer starts with 8 slots and doubles when it is full. One slot is
always kept free, so 8 slots hold at most 7 elements. If you pass
`max_capacity`, growing past that limit raises `OverflowError` and
leaves the queue unchanged. Removing or peeking on an empty queue raises
`IndexError`. `clear()` empties the queue but keeps its capacity.

## Sockets

```python
from scnet.sock import Sock, Family

with Sock(0, True, Family.INET) as server:
    server.listen("127.0.0.1", "8004")
    print(server.describe())   # "Local(127.0.0.1:8004), Remote() "
    conn = server.accept()      # a new Sock
    data = conn.recv(5)
    conn.term()
```

Here is a client for that server:

```python
with Sock(0, True, Family.INET) as client:
    client.connect("127.0.0.1", "8004")
    client.send(b"test\0")
```

Errors are reported as follows:

- Failed operations raise `SockError`, a subclass of `OSError`. The
  message is also kept in `Sock.error`.
- A non-blocking operation that would have to wait raises `WouldBlock`,
  a subclass of `SockError`. For a non-blocking `connect`, call
  `finish_connect()` once the socket is writable. It raises if the
  connection failed.
- `recv` raises `EOFError` when the peer has closed the connection.
- `recv` with a size of zero or less returns `b""`, and `send(b"")`
  returns `0`.

Other behaviour to be aware of:

- `connect` tries the addresses of the socket's own family first.
- For Unix sockets, `listen` takes a path as its host and removes any
  file already at that path.
- `set_rcvtimeo` and `set_sndtimeo` take milliseconds.
- `term()` may be called more than once.

Each socket carries a `SockFd` in its `fdt` attribute. That object holds
the descriptor, a user `type` value, and an `op` field with the `Event`
flags (`READ`, `WRITE`, `EDGE`) for which it is registered. The package
itself sets `op` to `Event.NONE` and never changes it.

`notify_systemd("READY=1\n")` sends a datagram to the socket named by
`NOTIFY_SOCKET`. A leading `@` in that name selects the abstract
namespace. The function raises `SockError` when the variable is missing
or invalid, or when sending fails.

## Shutdown and fatal signals

```python
import os
from scnet.signals import SignalHandler

read_fd, write_fd = os.pipe()
handler = SignalHandler(shutdown_fd=write_fd).install()
# Watch read_fd; when a byte arrives, shut down cleanly.
```

`install()` ignores SIGHUP and SIGPIPE. It routes SIGINT and SIGTERM to
`on_shutdown`, and SIGABRT, SIGSEGV, SIGBUS, SIGFPE and SIGILL to
`on_fatal`. Signals that the platform lacks are skipped.

On the first shutdown signal, the handler logs the signal and writes
one byte to `shutdown_fd`. What happens next depends on the setup:

- Without a shutdown descriptor, the handler calls `exit_func(0)`.
  `exit_func` defaults to `os._exit`.
- If the write fails, it calls `exit_func(1)`.
- A second shutdown signal calls `exit_func(1)`.

Log lines go to `log_fd`, or to standard output when `log_fd` is not set.

The fatal handler writes a crash report to `log_fd`, or to standard
error when `log_fd` is not set. The report includes the Python stack.
The handler then restores the default action and raises the signal
again.

The module-level `install()` installs a handler with the defaults. With
those defaults the first SIGINT or SIGTERM exits straight away.

## Formatting

`format_message` supports `%s`, `%d`, `%ld`, `%lld`, `%u`, `%lu`, `%llu`,
`%p` and `%%`. Any other conversion raises `ValueError`.

```python
from scnet.signals import format_message, log

format_message("%d", -3)               # "-3"
format_message("%s", None)             # "(null)"
format_message("%p", 0xabcdef)         # "0xabcdef"
format_message("%%p")                  # "%p"
format_message("%s", "test", limit=0)  # ""
log(1, "%s\n", "test")                 # writes to standard output
```

`limit` is a buffer size, so at most `limit - 1` characters are kept.

## What the package does not do

There is no readiness poller or event loop. You watch the sockets and
the shutdown descriptor yourself, for example with the standard
`selectors` module. Although `SockFd.op` and `Event` exist, nothing in
the package registers interest or reports readiness.

The package has no pipe wrapper either. Use `os.pipe()` for the
shutdown descriptor.

The package provides no command-line program.