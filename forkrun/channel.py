__all__ = 'Channel',

import os
import socket
from .fd import FD


class Channel:
    """two-ended conduit between a parent and the child it is about to fork

    A Channel wraps os.pipe() or socket.socketpair() and splits it into a
    parent_end and a child_end. `reading` is the index of the pipe end the
    child gets: 0 if the child reads from it (like stdin) and 1 if the child
    writes to it (like stdout). Without a reading index, the Channel is a
    full-duplex socket pair.

    >>> c = Channel(reading=1)
    >>> c.child_end.write(b'hello')
    5
    >>> c.close_child(); c.parent_end.read()
    b'hello'
    >>> c.close(); c.close()
    >>> c
    Channel(reading=1)<FD(closed, 'rb'), FD(closed, 'wb')>

    >>> c = Channel()
    >>> c.child_end.write(b'ping'); c.parent_end.read(4)
    4
    b'ping'
    >>> c.parent_end.write(b'pong'); c.child_end.read(4)
    4
    b'pong'
    >>> c.close()
    """
    def __init__(self, reading=None):
        self.reading = reading
        if reading is None:
            a, b = socket.socketpair()
            self.fds = FD(a.detach(), 'r+b'), FD(b.detach(), 'r+b')
            self.parent_end, self.child_end = self.fds
        else:
            if reading not in (0, 1):
                raise ValueError(f'reading index must be 0 or 1, not {reading!r}')
            self.fds = tuple(
                FD(fd, f'{rw}b')
                for fd, rw in zip(os.pipe(), 'rw')
            )
            self.child_end = self.fds[reading]
            self.parent_end = self.fds[1 - reading]

    @classmethod
    def for_key(cls, key):
        """create the Channel suited to a plan key

        Roles know which way their data flows and get a pipe; any other
        descriptor gets a socket pair.

        >>> from forkrun.plan import Role
        >>> for key in Role.INPUT, Role.ERROR, 5:
        ...     c = Channel.for_key(key); print(c.child_end.mode); c.close()
        ...
        rb
        wb
        r+b
        """
        return cls(getattr(key, 'reading', None))

    @property
    def duplex(self):
        return self.reading is None

    def close_child(self):
        self.child_end.close()

    def close_parent(self):
        self.parent_end.close()

    def close(self, invalid_ok=True):
        for fd in self.fds:
            fd.close(invalid_ok)

    def __repr__(self):
        reading = '' if self.reading is None else f'reading={self.reading}'
        return f'{type(self).__name__}({reading})<{self.fds[0]}, {self.fds[1]}>'
