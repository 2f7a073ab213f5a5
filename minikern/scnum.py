"""System call numbers."""

from enum import IntEnum


class Syscall(IntEnum):
    """Numbers identifying each system call."""

    EXIT = 0
    EXEC = 1
    FORK = 2
    WAIT = 3
    PRINT = 4
    USLEEP = 5

    FSCREATE = 10
    FSDELETE = 11

    OPEN = 15
    CLOSE = 16
    READ = 17
    WRITE = 18
    FCNTL = 19
    PIPE = 20
    UIODUP = 21