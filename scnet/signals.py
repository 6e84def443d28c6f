"""Shutdown and crash signal handling with minimal, allocation-light logging."""

from __future__ import annotations

import operator
import os
import re
import signal
import traceback

__all__ = ["SignalHandler", "format_message", "log", "install"]

_STDOUT_FD = 1
_STDERR_FD = 2

_PTR_BITS = 64
_INT_BITS = 32
_LONG_BITS = 64

# A conversion: optional 'l' or 'll' length modifier followed by one character.
_SPEC = re.compile(r"%(l{0,2})(.?)", re.DOTALL)

_SHUTDOWN_SIGNALS = ("SIGTERM", "SIGINT")
_IGNORED_SIGNALS = ("SIGHUP", "SIGPIPE")
_FATAL_SIGNALS = ("SIGABRT", "SIGSEGV", "SIGBUS", "SIGFPE", "SIGILL")

_SHUTDOWN_NAMES = ("SIGINT", "SIGTERM")


def _signal_name(signum, known, default):
    for name in known:
        if getattr(signal, name, None) == signum:
            return name
    return default


def _next_arg(values):
    try:
        return next(values)
    except StopIteration:
        raise ValueError("not enough arguments for format string") from None


def _to_signed(value, bits):
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def format_message(fmt, *args, limit=None):
    """Format ``fmt`` with a small printf subset and return the text.

    Supported conversions are ``%s``, ``%d``, ``%ld``, ``%lld``, ``%u``,
    ``%lu``, ``%llu``, ``%p`` and ``%%``; anything else raises ValueError.
    If ``limit`` is given it is the size of the destination buffer, so at
    most ``limit - 1`` characters are kept.
    """
    if limit is not None and limit < 0:
        raise ValueError(f"limit must not be negative: {limit}")

    values = iter(args)
    parts = []
    pos = 0

    for match in _SPEC.finditer(fmt):
        parts.append(fmt[pos:match.start()])
        pos = match.end()
        length, conv = match.groups()
        bits = _INT_BITS if not length else _LONG_BITS

        if conv == "%" and not length:
            parts.append("%")
        elif conv == "s" and not length:
            value = _next_arg(values)
            parts.append("(null)" if value is None else str(value))
        elif conv == "p" and not length:
            value = _next_arg(values)
            addr = 0 if value is None else operator.index(value)
            parts.append(f"0x{addr & ((1 << _PTR_BITS) - 1):x}")
        elif conv == "d":
            value = operator.index(_next_arg(values))
            parts.append(str(_to_signed(value, bits)))
        elif conv == "u":
            value = operator.index(_next_arg(values))
            parts.append(str(value & ((1 << bits) - 1)))
        else:
            raise ValueError(f"unsupported conversion {match.group(0)!r}")

    parts.append(fmt[pos:])
    text = "".join(parts)

    if limit is not None:
        text = text[: max(limit - 1, 0)]
    return text


def log(fd, fmt, *args, limit=None):
    """Format a message and write it to file descriptor ``fd``.

    Write failures are ignored, as a log call from a signal handler has
    nowhere to report them.
    """
    text = format_message(fmt, *args, limit=limit)
    try:
        os.write(fd, text.encode("utf-8", "backslashreplace"))
    except OSError:
        pass


class SignalHandler:
    """Handles shutdown signals (SIGINT, SIGTERM) and fatal signals.

    On the first shutdown signal one byte is written to ``shutdown_fd`` so
    the application can notice and stop cleanly; without a shutdown fd the
    process exits at once. A second shutdown signal forces exit.
    """

    def __init__(self, log_fd=None, shutdown_fd=None, exit_func=os._exit):
        self.log_fd = log_fd
        self.shutdown_fd = shutdown_fd
        self.exit_func = exit_func
        self.will_shutdown = False

    def install(self):
        """Register this handler for shutdown and fatal signals.

        SIGHUP and SIGPIPE are ignored. Signals unknown to the platform are
        skipped. Raises OSError or ValueError if registration fails.
        """
        for name in _IGNORED_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                signal.signal(signum, signal.SIG_IGN)

        for name in _SHUTDOWN_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                signal.signal(signum, self.on_shutdown)

        for name in _FATAL_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                signal.signal(signum, self.on_fatal)

        return self

    def on_shutdown(self, signum, frame):
        """Handle a shutdown request."""
        fd = self.log_fd if self.log_fd is not None else _STDOUT_FD
        name = _signal_name(signum, _SHUTDOWN_NAMES, "Shutdown signal")

        log(fd, "Recv : %s, (%d) \n", name, int(signum))

        if self.will_shutdown:
            log(fd, "Forcing shut down! \n")
            self.exit_func(1)
            return

        self.will_shutdown = True

        if self.shutdown_fd is None:
            log(fd, "No shutdown handler, shutting down! \n")
            self.exit_func(0)
            return

        log(fd, "Sending shutdown command. \n")
        try:
            written = os.write(self.shutdown_fd, b"\x01")
        except OSError:
            written = -1

        if written != 1:
            log(
                fd,
                "Failed to send shutdown command, "
                "shutting down immediately! \n",
            )
            self.exit_func(1)

    def on_fatal(self, signum, frame):
        """Write a crash report, restore the default action and re-raise."""
        fd = self.log_fd if self.log_fd is not None else _STDERR_FD
        name = _signal_name(signum, _FATAL_SIGNALS, "unknown signal")

        log(fd, "\nSignal : [%d][%s] \n", int(signum), name)
        log(fd, "\n----------------- CRASH REPORT ---------------- \n")

        if frame is not None:
            log(fd, "%s", "".join(traceback.format_stack(frame)))

        log(fd, "\n--------------- CRASH REPORT END -------------- \n")
        log(fd, "\nSignal handler completed! \n")

        try:
            os.close(fd)
        except OSError:
            pass

        signal.signal(signum, signal.SIG_DFL)
        signal.raise_signal(signum)


def install():
    """Install a default SignalHandler and return it."""
    return SignalHandler().install()