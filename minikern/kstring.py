"""String comparison, number parsing and printf-style formatting."""

from __future__ import annotations

from itertools import zip_longest
from typing import Any, Callable, Iterator, Optional, Sequence, Tuple

_ULONG_BITS = 64
_ULONG_MASK = (1 << _ULONG_BITS) - 1
_UINT_MASK = (1 << 32) - 1


def _cstr(s: str) -> str:
    """Return the part of *s* before the first NUL character."""
    return s.split("\0", 1)[0]


def strcmp(s1: Optional[str], s2: Optional[str]) -> int:
    """Compare two strings, returning -1, 0 or 1.

    ``None`` compares before any string, and two ``None`` values are equal.
    """
    if s1 is None or s2 is None:
        if s1 is None:
            return 0 if s2 is None else -1
        return 1

    a, b = _cstr(s1), _cstr(s2)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def strncmp(s1: str, s2: str, n: int) -> int:
    """Compare at most *n* characters; return the difference of the first mismatch."""
    a, b = _cstr(s1)[:n], _cstr(s2)[:n]
    for x, y in zip_longest(a, b, fillvalue="\0"):
        if x != y:
            return ord(x) - ord(y)
    return 0


def strtoul(text: str, base: int) -> Tuple[int, str]:
    """Parse an unsigned number in *base* (2 to 10) from the start of *text*.

    Returns the value, reduced to 64 bits as an unsigned long would be, and
    the unparsed rest of the text. A leading ``-`` negates the value modulo
    2**64. Raises ValueError for a missing text or an unsupported base.
    """
    if text is None:
        raise ValueError("no string to parse")
    if base <= 1 or base > 10:
        raise ValueError(f"unsupported base {base}")

    neg = False
    if text.startswith("-"):
        neg = True
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]

    val = 0
    consumed = 0
    for ch in text:
        digit = ord(ch) - ord("0")
        if not 0 <= digit < base:
            break
        val = (val * base + digit) & _ULONG_MASK
        consumed += 1

    if neg:
        val = (-val) & _ULONG_MASK
    return val, text[consumed:]


def _signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    if value >> (bits - 1):
        value -= 1 << bits
    return value


def _as_int(arg: Any) -> int:
    if isinstance(arg, str):
        return ord(arg[0]) if arg else 0
    return int(arg)


def _format_int(putc: Callable[[str], Any], val: int, base: int,
                zpad: bool, width: int) -> int:
    digits = format(val, "x" if base == 16 else "d")
    pad = "0" if zpad else " "
    padding = max(0, width - len(digits))
    for ch in pad * padding + digits:
        putc(ch)
    return padding + len(digits)


def _format_str(putc: Callable[[str], Any], s: Any, width: int) -> int:
    text = "NULL" if s is None else _cstr(str(s))
    out = text + " " * max(0, width - len(text))
    for ch in out:
        putc(ch)
    return len(out)


def _format_char(putc: Callable[[str], Any], c: Any, width: int) -> int:
    width = max(width, 1)
    for _ in range(width - 1):
        putc(" ")
    if isinstance(c, str):
        putc(c[0] if c else "\0")
    else:
        putc(chr(int(c) & 0xFF))
    return width


def vgprintf(putc: Callable[[str], Any], fmt: str, args: Sequence[Any]) -> int:
    """Format *fmt* with *args*, passing each output character to *putc*.

    Supports ``%d %i %u %x %s %c %p`` with an optional ``0`` flag, a width,
    ``l``/``ll``/``z``/``j``/``h`` length modifiers. Unknown conversions are
    echoed as ``%`` followed by the character (``?`` if unprintable).
    Returns the number of characters produced.
    """
    arg_iter: Iterator[Any] = iter(args)

    def next_arg() -> Any:
        try:
            return next(arg_iter)
        except StopIteration:
            raise ValueError("not enough arguments for format string") from None

    fmt = _cstr(fmt)
    end = len(fmt)
    nout = 0
    i = 0

    while i < end:
        ch = fmt[i]
        if ch != "%":
            putc(ch)
            nout += 1
            i += 1
            continue

        i += 1
        zpad = i < end and fmt[i] == "0"
        width = 0
        while i < end and fmt[i].isdigit() and fmt[i].isascii():
            width = 10 * width + int(fmt[i])
            i += 1

        lcnt = 0
        while i < end and fmt[i] == "l":
            lcnt += 1
            i += 1
        if i < end and fmt[i] in "zj":
            lcnt = 2
            i += 1
        elif i < end and fmt[i] == "h":
            i += 1

        conv = fmt[i] if i < end else "\0"

        if conv in "di":
            ival = _signed(_as_int(next_arg()), 64 if lcnt > 0 else 32)
            if ival < 0:
                putc("-")
                nout += 1
                ival = -ival
                if width > 0:
                    width -= 1
            nout += _format_int(putc, ival, 10, zpad, width)
        elif conv in "ux":
            mask = _ULONG_MASK if lcnt > 0 else _UINT_MASK
            uval = _as_int(next_arg()) & mask
            nout += _format_int(putc, uval, 16 if conv == "x" else 10, zpad, width)
        elif conv == "s":
            nout += _format_str(putc, next_arg(), width)
        elif conv == "c":
            nout += _format_char(putc, next_arg(), width)
        elif conv == "p":
            ptr = _as_int(next_arg()) & _ULONG_MASK
            nout += _format_str(putc, "0x", 2)
            nout += _format_int(putc, ptr, 16, zpad, width)
        else:
            putc("%")
            putc(conv if " " <= conv < "\x7f" else "?")
            nout += 2
            if conv == "\0":
                break

        i += 1

    return nout


def kformat(fmt: str, *args: Any) -> str:
    """Return *fmt* formatted with *args* as a string."""
    out: list = []
    vgprintf(out.append, fmt, args)
    return "".join(out)


def snprintf(bufsz: int, fmt: str, *args: Any) -> Tuple[str, int]:
    """Format into a buffer of *bufsz* characters.

    Returns the text that fits (at most ``bufsz - 1`` characters) and the
    count the formatter reports: every character produced, plus one for the
    terminator when *bufsz* is not zero.
    """
    if bufsz < 0:
        raise ValueError("buffer size must not be negative")
    out: list = []
    room = bufsz

    def put(ch: str) -> None:
        nonlocal room
        if room <= 1:
            return
        out.append(ch)
        room -= 1

    n = vgprintf(put, fmt, args)
    if room != 0:
        n += 1
    return "".join(out), n