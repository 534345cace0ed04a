r"""top-level entry points: proc() launches a child, run() also waits for it

Positional arguments are strings (or lists of them) making up the command
line, or a single callable to run in the child instead; everything else is a
redirection directive:

>>> run('true')
ExitStatus(command='true', returncode=0)
>>> run('sh', '-c', 'exit 2')
Traceback (most recent call last):
...
forkrun.errors.RunFailure: "sh -c exit 2" exited with status 2
>>> run(['sh', '-c', 'exit 2'], may_fail=True).code
2

With a consumer, output lines are handed over one at a time with their line
terminators stripped:

>>> run('printf', 'a\\nb\\n', consumer=print)
b'a'
b'b'
ExitStatus(command='printf a\\nb\\n', returncode=0)

Asking for channels explicitly gets them handed over raw, in descriptor
order:

>>> def talk(stdin, stdout):
...     stdin.write(b'hello'); stdin.close()
...     print(stdout.read())
>>> run('cat', OUTPUT, INPUT, consumer=talk)
b'hello'
ExitStatus(command='cat', returncode=0)

Without a consumer, open channels are the caller's to handle and so is the
child:

>>> stdout, pid = run('echo', 'abc', OUTPUT)
>>> stdout.read(); stdout.close(); os.waitpid(pid, 0)[1]
b'abc\n'
0

Handles chain into pipelines, the output of one feeding the input of the
next without passing through this process:

>>> echo = proc('echo', 'abc', OUTPUT)
>>> upper = proc('tr', 'a-z', 'A-Z', OUTPUT, input=echo)
>>> echo.complete(); upper.output.read(); upper.complete()
ExitStatus(command='echo abc', returncode=0)
b'ABC\n'
ExitStatus(command='tr a-z A-Z', returncode=0)
"""

__all__ = 'proc', 'run', 'split_args'

import logging
import os
from .action import Exec, Callback
from .errors import ConfigError
from .fork_exec import spawn
from .handle import ResultHandle
from .plan import Options, RedirectionPlan, Role, key, INPUT, OUTPUT, ERROR  # noqa: F401

logger = logging.getLogger(__name__)


def flatten(value):
    if isinstance(value, str):
        yield value
    else:
        for item in value:
            yield from flatten(item)


def is_argv(value):
    if isinstance(value, str):
        return True
    if isinstance(value, (list, tuple)) and value:
        return all(is_argv(item) for item in value)
    return False


def split_args(args):
    """separate command line, callback and directives

    >>> split_args(['ls', ['-l', '-a'], Role.OUTPUT, {'stderr': None}])
    (['ls', '-l', '-a'], None, [<Role.OUTPUT: 1>, {'stderr': None}])
    """
    argv, callbacks, directives = [], [], []
    for arg in args:
        if is_argv(arg):
            argv.extend(flatten(arg))
        elif callable(arg) and not isinstance(arg, (Role, ResultHandle)):
            callbacks.append(arg)
        else:
            directives.append(arg)
    if len(callbacks) > 1:
        raise ConfigError(f'only one callback can run in the child, got {len(callbacks)}')
    if argv and callbacks:
        raise ConfigError('a child either execs a program or runs a callback, not both')
    return argv, (callbacks[0] if callbacks else None), directives


def get_input(spec):
    """a handle as an input target stands for its output end"""
    if isinstance(spec, ResultHandle):
        if spec.output is None:
            raise ConfigError(f'{spec!r} has no open output to read from')
        return spec.output
    return spec


def resolve(directive):
    if isinstance(directive, dict):
        return {
            k: get_input(spec) if key(k) is Role.INPUT else spec
            for k, spec in directive.items()
        }
    if isinstance(directive, tuple) and len(directive) == 2:
        k, spec = directive
        return k, get_input(spec) if key(k) is Role.INPUT else spec
    return directive


def prepare(args, options, consumer):
    argv, func, directives = split_args(args)
    if argv:
        action = Exec(argv, options.argv0_override)
    else:
        if options.argv0_override is not None:
            raise ConfigError('argv0_override needs a command line')
        action = None if func is None else Callback(func)
    directives = [resolve(d) for d in directives]
    directives += [
        (role, get_input(spec) if role is Role.INPUT else spec)
        for role, spec in options.directives()
    ]
    plan = RedirectionPlan.build(directives, consumer=consumer is not None)
    return action, plan


def launch(action, plan, consumer):
    handle = spawn(plan, action)
    if handle is None or consumer is None:
        return handle
    with handle:
        if plan.line_mode:
            for line in handle.lines():
                consumer(line)
        else:
            consumer(*handle.ios())
    return handle


def proc(*args, consumer=None, **options):
    """launch a child and return its ResultHandle without waiting

    The recognized options are input, output, error, may_fail (unused
    here, see run()) and argv0_override.

    consumer, if given, gets each output line (line mode, when no channel
    was asked for explicitly) or all the requested ends at once (raw mode).
    The channels are closed afterwards, however the consumer returns.

    Returns None in the child if there is no command line or callback: the
    caller is then running as the child.

    >>> handle = proc('sh', '-c', 'echo $0', argv0_override='renamed', consumer=print)
    b'renamed'
    >>> handle.ios(), handle.wait().success
    ((), True)
    """
    options = Options.from_mapping(options)
    action, plan = prepare(args, options, consumer)
    return launch(action, plan, consumer)


def run(*args, consumer=None, **options):
    """launch a child and, if nothing is left open, wait for it

    Waiting only happens for a command line (not a callback) once every
    channel is closed, which includes after a consumer returns. A status
    other than success raises RunFailure, unless may_fail is set. Otherwise
    the ResultHandle is returned and the caller takes it from there.

    LaunchError is raised regardless of may_fail, since the command never
    ran.
    """
    options = Options.from_mapping(options)
    action, plan = prepare(args, options, consumer)
    handle = launch(action, plan, consumer)
    if handle is None or not isinstance(action, Exec) or handle.ios():
        return handle
    status = handle.wait()
    if not options.may_fail:
        status.check()
    elif not status.success:
        logger.debug('%s failed with %s, which may_fail allows', status.command, status.describe())
    return status
