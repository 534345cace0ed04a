r"""redirection plans: what each descriptor of a child gets connected to

A plan maps keys (the standard roles, or any other child descriptor number)
to targets:

>>> RedirectionPlan([(Role.INPUT, None), (Role.ERROR, True)])
RedirectionPlan(INPUT=NULL, ERROR=PIPE)

Directives are processed in order and the last one for a key wins:

>>> RedirectionPlan.build([Role.OUTPUT, {'stdout': 'null'}])
RedirectionPlan(OUTPUT=NULL)

Bare roles ask for a fresh channel. With a consumer and no channel asked
for, the plan turns to line mode and captures the output itself:

>>> plan = RedirectionPlan.build([{'stderr': None}], consumer=True)
>>> plan, plan.line_mode
(RedirectionPlan(ERROR=NULL, OUTPUT=PIPE), True)
>>> plan = RedirectionPlan.build([Role.ERROR], consumer=True)
>>> plan, plan.line_mode
(RedirectionPlan(ERROR=PIPE), False)
"""

__all__ = (
    'DEVNULL_PATH',
    'Role', 'INPUT', 'OUTPUT', 'ERROR',
    'Target', 'Inherit', 'Null', 'Explicit', 'NewChannel',
    'INHERIT', 'NULL', 'DEVNULL', 'PIPE',
    'key', 'target', 'RedirectionPlan', 'Options',
)

import os
from dataclasses import dataclass, fields
from enum import IntEnum
from .channel import Channel
from .errors import ConfigError

DEVNULL_PATH = os.devnull
if not os.path.exists(DEVNULL_PATH):
    raise RuntimeError(f'null device {DEVNULL_PATH} not found')


class Role(IntEnum):
    """the standard streams of a child; the value is the real descriptor"""
    INPUT = 0
    OUTPUT = 1
    ERROR = 2

    @property
    def reading(self):
        """which end of a pipe the child gets: 0 to read, 1 to write"""
        return 0 if self is Role.INPUT else 1

    @classmethod
    def coerce(cls, value):
        """get a Role from a Role, 0-2 or a name like 'stdin' or 'err'

        >>> Role.coerce('stderr'), Role.coerce(0), Role.coerce(Role.OUTPUT)
        (<Role.ERROR: 2>, <Role.INPUT: 0>, <Role.OUTPUT: 1>)
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return ROLE_NAMES[value.lower()]
            except KeyError:
                raise ConfigError(f'unknown role: {value!r}') from None
        if isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 2:
            return cls(value)
        raise ConfigError(f'not a role: {value!r}')


INPUT, OUTPUT, ERROR = Role

ROLE_NAMES = {
    name: role
    for role, names in (
        (Role.INPUT, ('input', 'stdin', 'in')),
        (Role.OUTPUT, ('output', 'stdout', 'out')),
        (Role.ERROR, ('error', 'stderr', 'err')),
    )
    for name in names
}


class Target:
    """what a child descriptor is connected to"""
    __slots__ = ()


@dataclass(frozen=True, repr=False)
class Inherit(Target):
    """leave the descriptor as the parent has it"""
    def __repr__(self):
        return 'INHERIT'


@dataclass(frozen=True, repr=False)
class Null(Target):
    """connect the descriptor to the null device"""
    def __repr__(self):
        return 'NULL'


@dataclass(frozen=True)
class Explicit(Target):
    """connect the descriptor to a handle the caller already has"""
    handle: object

    def fileno(self):
        if isinstance(self.handle, int):
            return self.handle
        return self.handle.fileno()


@dataclass(frozen=True, repr=False)
class NewChannel(Target):
    """connect the descriptor to a fresh Channel, or to the one supplied"""
    channel: Channel = None

    def __repr__(self):
        return 'PIPE' if self.channel is None else f'PIPE({self.channel!r})'


INHERIT = Inherit()
NULL = DEVNULL = Null()
PIPE = NewChannel()

TARGET_NAMES = {
    'inherit': INHERIT,
    'null': NULL,
    'devnull': NULL,
    'pipe': PIPE,
}


def key(value):
    """normalize a plan key: a Role, or a descriptor number above 2

    >>> key('out'), key(7)
    (<Role.OUTPUT: 1>, 7)
    """
    if not isinstance(value, (Role, str, int)) and callable(getattr(value, 'fileno', None)):
        value = value.fileno()
    if isinstance(value, int) and not isinstance(value, (bool, Role)) and value > 2:
        return value
    return Role.coerce(value)


def target(spec):
    """resolve a symbolic target specifier

    >>> target(None), target(True), target('inherit'), target(5)
    (NULL, PIPE, INHERIT, Explicit(handle=5))
    >>> target(3.0)
    Traceback (most recent call last):
    ...
    forkrun.errors.ConfigError: not sure how to redirect to 3.0 of type <class 'float'>
    """
    if isinstance(spec, Target):
        return spec
    if spec is None or spec is False:
        return NULL
    if spec is True:
        return PIPE
    if isinstance(spec, str):
        try:
            return TARGET_NAMES[spec.lower()]
        except KeyError:
            raise ConfigError(f'unknown target: {spec!r}') from None
    if isinstance(spec, Channel):
        return NewChannel(spec)
    if isinstance(spec, int) or callable(getattr(spec, 'fileno', None)):
        return Explicit(spec)
    raise ConfigError(f'not sure how to redirect to {spec!r} of type {type(spec)}')


def pairs(directives):
    for directive in directives:
        if isinstance(directive, dict):
            yield from directive.items()
        elif isinstance(directive, tuple) and len(directive) == 2:
            yield directive
        else:
            yield directive, PIPE


class RedirectionPlan:
    """an immutable, ordered key -> Target mapping for one launch"""
    def __init__(self, entries=(), line_mode=False):
        resolved = {}
        for k, spec in entries:
            k = key(k)
            resolved.pop(k, None)
            resolved[k] = target(spec)
        self.entries = tuple(resolved.items())
        self.line_mode = line_mode

    @classmethod
    def build(cls, directives=(), consumer=False):
        """resolve directives, adding the implicit output channel of line mode

        A directive is a {key: specifier} mapping, a (key, specifier) pair or
        a bare key meaning (key, PIPE).
        """
        plan = cls(pairs(directives))
        if consumer and not plan.channels and Role.OUTPUT not in plan:
            return cls(plan.entries + ((Role.OUTPUT, PIPE),), line_mode=True)
        return plan

    @property
    def channels(self):
        """keys resolved to a NewChannel, in descriptor order"""
        return tuple(sorted(
            k for k, t in self.entries
            if isinstance(t, NewChannel)
        ))

    def __getitem__(self, k):
        return dict(self.entries)[key(k)]

    def __contains__(self, k):
        return any(k == k_ for k_, _ in self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __len__(self):
        return len(self.entries)

    def __repr__(self):
        items = ', '.join(
            f'{k.name if isinstance(k, Role) else k}={t!r}'
            for k, t in self.entries
        )
        return f'{type(self).__name__}({items})'


class Unset:
    """default of the stream options that were not given at all"""
    __slots__ = ()

    def __repr__(self):
        return 'UNSET'


UNSET = Unset()


@dataclass(frozen=True)
class Options:
    """the recognized keyword options of an invocation

    input, output and error take target specifiers, None being the null
    device as everywhere else; a stream option left out adds no directive.

    >>> Options.from_mapping({'may_fail': True, 'error': None})
    Options(input=UNSET, output=UNSET, error=None, may_fail=True, argv0_override=None)
    >>> list(Options(error=None).directives())
    [(<Role.ERROR: 2>, None)]
    >>> Options.from_mapping({'stdout': True})
    Traceback (most recent call last):
    ...
    forkrun.errors.ConfigError: unrecognized option(s): stdout
    """
    input: object = UNSET
    output: object = UNSET
    error: object = UNSET
    may_fail: bool = False
    argv0_override: str = None

    def __post_init__(self):
        if self.argv0_override is not None and not isinstance(self.argv0_override, str):
            raise ConfigError(f'argv0_override must be a str, not {type(self.argv0_override)}')
        if not isinstance(self.may_fail, bool):
            raise ConfigError(f'may_fail must be a bool, not {type(self.may_fail)}')

    @classmethod
    def from_mapping(cls, mapping):
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ConfigError(f'unrecognized option(s): {", ".join(unknown)}')
        return cls(**mapping)

    def directives(self):
        """(role, specifier) pairs for the stream options that were given"""
        for role in Role:
            spec = getattr(self, role.name.lower())
            if spec is not UNSET:
                yield role, spec
