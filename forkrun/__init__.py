r"""forkrun - fork a child, wire up its streams and know whether it launched

The simplest thing is to run a program and get its exit status:

>>> run('true')
ExitStatus(command='true', returncode=0)

Command lines are never handed to a shell; strings and lists of strings are
just the arguments. Failing programs raise:

>>> try: run('cat', '/nonexistent', error=DEVNULL)
... except RunFailure as e: print(e)
...
"cat /nonexistent" exited with status 1

unless they are allowed to:

>>> run('cat', '/nonexistent', error=DEVNULL, may_fail=True).code
1

and programs that cannot even be started always raise, since they never
ran at all:

>>> run('/nonexistent/program', may_fail=True)  # doctest: +ELLIPSIS
Traceback (most recent call last):
...
forkrun.errors.LaunchError: "/nonexistent/program" could not be launched: FileNotFoundError: ...

A consumer gets the output line by line:

>>> run('printf', 'x\\ny\\n', consumer=print)
b'x'
b'y'
ExitStatus(command='printf x\\ny\\n', returncode=0)

or, if INPUT, OUTPUT or ERROR are asked for, the channels themselves:

>>> run('cat', '/nonexistent', ERROR, may_fail=True,
...     consumer=lambda stderr: print(stderr.read().startswith(b'cat:')))
True
ExitStatus(command='cat /nonexistent', returncode=1)

Consumers can launch more processes, so pipelines nest:

>>> def first_two(numbers):
...     run('head', '-n', '2', input=numbers, consumer=print)
>>> run('printf', '1\\n2\\n3\\n', OUTPUT, consumer=first_two)
b'1'
b'2'
ExitStatus(command='printf 1\\n2\\n3\\n', returncode=0)

Without a consumer, asking for channels gets a ResultHandle, which is the
caller's to close and wait for:

>>> with proc('tr', 'a-z', 'A-Z', INPUT, OUTPUT) as upper:
...     upper.input.write(b'abc'); upper.close(INPUT); upper.output.read()
3
b'ABC'
>>> upper.wait()
ExitStatus(command='tr a-z A-Z', returncode=0)

The child can also run a function instead of a program:

>>> import os
>>> def child(): os.write(1, b'from a callback')
>>> handle = run(child, OUTPUT)
>>> handle.output.read(); handle.complete()
b'from a callback'
ExitStatus(command='<callback child>', returncode=0)

or nothing at all, in which case run() returns in both processes, with None
in the child:

>>> handle = run(OUTPUT)
>>> if handle is None: os.write(1, b'hi dad'); os._exit(0)
>>> handle.output.read(); handle.complete()
b'hi dad'
ExitStatus(command='<fork>', returncode=0)
"""

from .fd import FD  # noqa: F401
from .channel import Channel  # noqa: F401
from .plan import *  # noqa: F401 F403
from .action import Exec, Callback  # noqa: F401
from .errors import *  # noqa: F401 F403
from .status import ExitStatus  # noqa: F401
from .handle import ResultHandle  # noqa: F401
from .fork_exec import spawn  # noqa: F401
from .process import proc, run  # noqa: F401
