__all__ = 'FD',

import os
import fcntl
from errno import EBADF


class FD:
    r"""file descriptor wrapper

    A glorified integer with a close() method that closes at most once: after
    the first close the wrapper forgets the number, so a later close() can
    never hit a descriptor that has since been reused.

    >>> r, w = os.pipe()
    >>> rfd, wfd = FD(r, 'rb'), FD(w, 'wb')
    >>> wfd.write(b'test')
    4
    >>> wfd.close(); wfd.closed
    True
    >>> rfd.read()
    b'test'
    >>> rfd.close(); rfd.close()
    >>> rfd
    FD(closed, 'rb')

    Reading and writing go through a lazily opened file object, which takes
    over the descriptor; closing the FD closes the file:

    >>> r, w = os.pipe()
    >>> rfd, wfd = FD(r, 'rb'), FD(w, 'wb')
    >>> wfd.write(b'a\nb\n'); wfd.close()
    4
    >>> list(rfd)
    [b'a\n', b'b\n']
    >>> rfd.close()
    """
    def __init__(self, fd, mode='rb'):
        self.fd = int(fd)
        self.mode = mode
        self.file = None

    def fileno(self):
        if self.fd is None:
            raise ValueError(f'{type(self).__name__} is closed')
        return self.fd

    def open(self):
        """get the file object backing this FD, opening it on first use

        Duplex ('+') ends are unbuffered since the underlying socket cannot
        seek, which buffered read-write files insist on.
        """
        if self.file is None:
            buffering = 0 if '+' in self.mode else -1
            self.file = open(self.fileno(), self.mode, buffering=buffering)
        return self.file

    def close(self, invalid_ok=True):
        fd, self.fd = self.fd, None
        if fd is None:
            return
        file, self.file = self.file, None
        try:
            if file is not None:
                file.close()
            else:
                os.close(fd)
        except OSError as e:
            if not invalid_ok or e.errno != EBADF:
                raise

    def detach(self):
        """forget the descriptor without closing it and return it"""
        fd = self.fileno()
        self.fd = self.file = None
        return fd

    @property
    def closed(self):
        return self.fd is None

    def read(self, size=-1):
        return self.open().read(size)

    def readline(self):
        return self.open().readline()

    def write(self, data):
        """write all of data and flush it through to the descriptor"""
        file = self.open()
        view = memoryview(data).cast('B')
        written = 0
        while written < len(view):
            written += file.write(view[written:]) or 0
        file.flush()
        return written

    def __iter__(self):
        return iter(self.open())

    def readable(self):
        return any(c in self.mode for c in 'r+') and not self.closed

    def writable(self):
        return any(c in self.mode for c in 'wxa+') and not self.closed

    def __repr__(self):
        fd = 'closed' if self.fd is None else self.fd
        return f'{type(self).__name__}({fd}, {repr(self.mode)})'

    def __int__(self):
        return self.fileno()

    @property
    def cloexec(self):
        """whether the descriptor is closed by a successful exec

        Descriptors from os.pipe() and socket.socketpair() start out that way:

        >>> r, w = os.pipe()
        >>> fd = FD(r); fd.cloexec
        True
        >>> fd.cloexec = False; fd.cloexec
        False
        >>> fd.close(); os.close(w)
        """
        return bool(fcntl.fcntl(self.fileno(), fcntl.F_GETFD) & fcntl.FD_CLOEXEC)

    @cloexec.setter
    def cloexec(self, value):
        flags = fcntl.fcntl(self.fileno(), fcntl.F_GETFD)
        flags = flags | fcntl.FD_CLOEXEC if value else flags & ~fcntl.FD_CLOEXEC
        fcntl.fcntl(self.fileno(), fcntl.F_SETFD, flags)
