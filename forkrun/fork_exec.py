"""low-level module for launching a child with os.fork and os.exec

It only contains one public function, spawn(), which takes a
RedirectionPlan and a child action and returns a ResultHandle:

>>> from forkrun.plan import RedirectionPlan, Role
>>> from forkrun.action import Exec
>>> handle = spawn(RedirectionPlan.build([Role.OUTPUT]), Exec(['echo', 'hello world']))
>>> handle.output.read()
b'hello world\\n'
>>> handle.complete()
ExitStatus(command='echo hello world', returncode=0)

A program that cannot be launched raises in the parent, after the child is
reaped and every channel closed:

>>> spawn(RedirectionPlan.build([Role.INPUT]), Exec(['/nonexistent/program']))  # doctest: +ELLIPSIS
Traceback (most recent call last):
...
forkrun.errors.LaunchError: "/nonexistent/program" could not be launched: FileNotFoundError: [Errno 2] No such file or directory...
"""

__all__ = 'spawn', 'RESET_SIGNALS'

import fcntl
import logging
import os
import signal
import sys
import traceback
from .action import Exec, Callback, describe
from .channel import Channel
from .control import ControlChannel
from .errors import ConfigError, ResourceError
from .handle import ResultHandle, release
from .plan import DEVNULL_PATH, Explicit, NewChannel, Null

logger = logging.getLogger(__name__)

MAXFD = os.sysconf('SC_OPEN_MAX')

RESET_SIGNALS = tuple(
    sig
    for sig in (getattr(signal, name, None) for name in ('SIGPIPE', 'SIGXFSZ'))
    if sig is not None
)


def sources(plan, channels):
    """child side: (key, source descriptor, owned) for every planned key

    Owned sources were made for this child and get closed once copied.
    """
    for key, target in plan:
        if isinstance(target, NewChannel):
            yield int(key), channels[key].child_end.detach(), True
        elif isinstance(target, Null):
            yield int(key), os.open(DEVNULL_PATH, os.O_RDWR), True
        elif isinstance(target, Explicit):
            yield int(key), target.fileno(), False


def apply(plan, channels):
    """child side: point every planned descriptor at its target

    A source sitting on a descriptor that another key is about to take over
    is first moved above all planned descriptors.
    """
    for channel in channels.values():
        channel.close_parent()
    moves = list(sources(plan, channels))
    keys = {key for key, _, _ in moves}
    above = max(keys, default=2) + 1
    for i, (key, fd, owned) in enumerate(moves):
        if fd != key and fd in keys:
            moves[i] = key, fcntl.fcntl(fd, fcntl.F_DUPFD_CLOEXEC, above), True
            if owned:
                os.close(fd)
    for key, fd, _ in moves:
        if fd == key:
            os.set_inheritable(fd, True)
        else:
            os.dup2(fd, key)
    for key, fd, owned in moves:
        if owned and fd != key:
            os.close(fd)


def reset_signals():
    for sig in RESET_SIGNALS:
        signal.signal(sig, signal.SIG_DFL)


def child(plan, channels, action, control):
    """runs in the forked child; only returns for a bare fork

    A program drops the parent's channel ends on exec, since they are all
    close-on-exec. Without exec, the ends other handles own are closed by
    hand, and a callback also loses every descriptor above the planned ones.
    """
    keys = {int(k) for k, _ in plan}
    above = max(keys, default=2) + 1
    if control is not None:
        def become():
            apply(plan, channels)
            reset_signals()
            action()
        control.launch(become, above=above)

    try:
        release(keep={t.fileno() for _, t in plan if isinstance(t, Explicit)})
        apply(plan, channels)
        release(keep=keys)
        if action is not None:
            os.closerange(above, MAXFD)
    except BaseException:
        os.write(2, traceback.format_exc().encode(errors='replace'))
        os._exit(1)
    if action is not None:
        os._exit(action())


def allocate(plan, action):
    """create the Channels the plan asks for, plus the control channel for exec"""
    channels = {}
    try:
        for key in plan.channels:
            channels[key] = plan[key].channel or Channel.for_key(key)
        control = ControlChannel() if isinstance(action, Exec) else None
    except OSError as e:
        for channel in channels.values():
            channel.close()
        raise ResourceError(e.errno, f'could not create a channel: {e.strerror}') from e
    return channels, control


def spawn(plan, action=None):
    """launch action in a child wired according to plan

    action is an Exec, a Callback or None. With None, the child is not given
    anything to do: spawn() returns None in it, and the caller, now running
    as the child, must take care of everything from there.

    In the parent, returns a ResultHandle owning the parent ends of the new
    channels. For Exec, it only returns once the program has replaced the
    child, and raises LaunchError otherwise.
    """
    if action is not None and not isinstance(action, (Exec, Callback)):
        raise ConfigError(f'not a child action: {action!r}')
    for key, target in plan:
        if isinstance(target, Explicit):
            try:
                target.fileno()
            except (AttributeError, ValueError) as e:
                raise ConfigError(f'cannot redirect {key!r} to {target.handle!r}: {e}') from e

    for stream in sys.stdout, sys.stderr:
        if stream is not None:
            stream.flush()

    channels, control = allocate(plan, action)
    try:
        pid = os.fork()
    except OSError as e:
        for channel in channels.values():
            channel.close()
        if control is not None:
            control.close()
        raise ResourceError(e.errno, f'could not fork: {e.strerror}') from e

    if pid == 0:
        child(plan, channels, action, control)
        return None

    for channel in channels.values():
        channel.close_child()
    command = describe(action)
    handle = ResultHandle(
        {key: channel.parent_end for key, channel in channels.items()},
        pid, command,
    )
    logger.debug('spawned pid %d for %s with %r', pid, command, plan)
    if control is None:
        return handle

    try:
        report = control.drain()
    except BaseException:
        handle.close()
        handle.kill(signal.SIGKILL)
        handle.wait()
        raise
    if report is not None:
        handle.wait()
        handle.close()
        logger.debug('pid %d could not launch %s: %s', pid, command, report)
        raise report.error(command, pid)
    return handle
