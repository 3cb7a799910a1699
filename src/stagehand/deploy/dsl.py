"""Reader for stage files.

A stage file declares servers and stage variables::

    ip = '176.112.204.92'

    role :app, ["deploy@#{ip}"]
    server ip, user: 'deploy', roles: %w{web app db}

    set :stage, 'production'

Statements are local assignments, ``role``, ``server`` and ``set`` calls.
Servers are keyed by address and port, repeated declarations of the same
server are merged into one target.
"""
import re
import logging

from pathlib import Path

from stagehand.utils.collections import merge_unique

from .stage import Stage, DEFAULT_SSH_PORT


logger = logging.getLogger(__name__)

TOKEN_SPEC = [
    ('NEWLINE', r'\n'),
    ('SKIP', r'[ \t\r]+|\\\n'),
    ('COMMENT', r'#[^\n]*'),
    ('WORDS', r'%[wi](?:\{[^}]*\}|\[[^\]]*\]|\([^)]*\))'),
    ('DSTRING', r'"(?:[^"\\]|\\.)*"'),
    ('SSTRING', r"'(?:[^'\\]|\\.)*'"),
    ('UNTERMINATED', r'["\']'),
    ('SYMBOL', r':[A-Za-z_]\w*'),
    ('KEY', r'[A-Za-z_]\w*:(?!:)'),
    ('INT', r'-?\d+'),
    ('IDENT', r'[A-Za-z_]\w*'),
    ('PUNCT', r'[,=\[\]]'),
    ('MISMATCH', r'.'),
]
TOKEN_RE = re.compile(
    '|'.join(f'(?P<{name}>{pattern})' for name, pattern in TOKEN_SPEC),
    re.DOTALL
)
ESCAPE_RE = re.compile(r'\\(.)|#\{([A-Za-z_]\w*)\}', re.DOTALL)
HOST_RE = re.compile(
    r'^(?:(?P<user>[^@\s]+)@)?(?P<address>[^@:\s]+)(?::(?P<port>\d+))?$')

ESCAPES = {'n': '\n', 't': '\t', 's': ' ', '0': '\0'}
CONSTANTS = {'true': True, 'false': False, 'nil': None}


class StageSyntaxError(ValueError):
    def __init__(self, message, filename='<stage>', line=0, column=0):
        self.message = message
        self.filename = filename
        self.line = line
        self.column = column
        super().__init__(f'{filename}:{line}:{column}: {message}')


class Token:
    __slots__ = ('kind', 'value', 'line', 'column')

    def __init__(self, kind, value, line, column):
        self.kind = kind
        self.value = value
        self.line = line
        self.column = column

    def __repr__(self):
        return f'<Token {self.kind} {self.value!r} {self.line}:{self.column}>'


class Symbol(str):
    """Name written as `:name`, compares equal to plain string."""


def tokenize(text, filename='<stage>'):
    """Yield tokens, newlines inside brackets or after commas are dropped.

    >>> [token.kind for token in tokenize("set :stage, 'prod' # comment")]
    ['IDENT', 'SYMBOL', 'PUNCT', 'SSTRING', 'NEWLINE']
    """
    line, line_start = 1, 0
    depth = 0
    previous = None
    for match in TOKEN_RE.finditer(text):
        kind, value = match.lastgroup, match.group()
        column = match.start() - line_start + 1
        if kind == 'MISMATCH':
            raise StageSyntaxError(
                f'Unexpected character {value!r}', filename, line, column)
        if kind == 'UNTERMINATED':
            raise StageSyntaxError(
                'Unterminated string', filename, line, column)

        token = Token(kind, value, line, column)
        newlines = value.count('\n')
        if newlines:
            line += newlines
            line_start = match.start() + value.rindex('\n') + 1

        if kind in ('SKIP', 'COMMENT'):
            continue
        if kind == 'NEWLINE':
            continuation = depth > 0 or (
                previous is not None and previous.value == ',' and
                previous.kind == 'PUNCT'
            )
            if continuation or previous is None or \
                    previous.kind == 'NEWLINE':
                continue
        elif kind == 'PUNCT' and value == '[':
            depth += 1
        elif kind == 'PUNCT' and value == ']':
            depth -= 1
            if depth < 0:
                raise StageSyntaxError(
                    "Unexpected ']'", filename, token.line, token.column)
        previous = token
        yield token

    if depth:
        raise StageSyntaxError("Missing ']'", filename, line, 0)
    if previous is not None and previous.kind != 'NEWLINE':
        yield Token('NEWLINE', '\n', line, 0)


class StageParser:
    COMMANDS = ('role', 'server', 'set')

    def __init__(self, text, filename='<stage>'):
        self.filename = filename
        self.variables = {}
        self.servers = {}
        self.settings = {}
        self._tokens = list(tokenize(text, filename))
        self._position = 0

    def parse(self) -> dict:
        while self._peek() is not None:
            self._statement()
        return {
            'servers': list(self.servers.values()),
            'settings': self.settings,
        }

    def _error(self, message, token=None):
        token = token or self._peek() or self._tokens[-1]
        return StageSyntaxError(
            message, self.filename, token.line, token.column)

    def _peek(self, offset=0):
        position = self._position + offset
        if position < len(self._tokens):
            return self._tokens[position]
        return None

    def _next(self):
        token = self._peek()
        if token is None:
            raise self._error('Unexpected end of file')
        self._position += 1
        return token

    def _expect(self, kind, value=None):
        token = self._next()
        if token.kind != kind or (value is not None and token.value != value):
            expected = value or kind.lower()
            raise self._error(
                f'Expected {expected!r}, got {token.value!r}', token)
        return token

    def _statement(self):
        token = self._next()
        following = self._peek()
        if token.kind != 'IDENT':
            raise self._error(f'Unexpected {token.value!r}', token)

        if following is not None and following.value == '=':
            self._next()
            self.variables[token.value] = self._value()
        elif token.value in self.COMMANDS:
            args, kwargs = self._arguments()
            getattr(self, f'_command_{token.value}')(token, args, kwargs)
        else:
            raise self._error(f'Unknown statement {token.value!r}', token)
        self._expect('NEWLINE')

    def _arguments(self):
        args, kwargs = [], {}
        while True:
            token = self._peek()
            if token is None or token.kind == 'NEWLINE':
                break
            if token.kind == 'KEY':
                self._next()
                kwargs[token.value[:-1]] = self._value()
            elif kwargs:
                raise self._error(
                    'Positional argument after keyword argument', token)
            else:
                args.append(self._value())

            token = self._peek()
            if token is not None and token.value == ',':
                self._next()
            elif token is not None and token.kind != 'NEWLINE':
                raise self._error(f'Expected \',\', got {token.value!r}')
        return args, kwargs

    def _value(self):
        token = self._next()
        kind, value = token.kind, token.value
        if kind == 'SSTRING':
            return re.sub(r"\\([\\'])", r'\1', value[1:-1])
        if kind == 'DSTRING':
            return self._interpolate(token)
        if kind == 'SYMBOL':
            return Symbol(value[1:])
        if kind == 'INT':
            return int(value)
        if kind == 'WORDS':
            words = value[3:-1].split()
            if value[1] == 'i':
                return [Symbol(word) for word in words]
            return words
        if kind == 'IDENT':
            if value in CONSTANTS:
                return CONSTANTS[value]
            if value not in self.variables:
                raise self._error(f'Undefined variable {value!r}', token)
            return self.variables[value]
        if kind == 'PUNCT' and value == '[':
            items = []
            while self._peek() is not None and self._peek().value != ']':
                items.append(self._value())
                if self._peek() is not None and self._peek().value == ',':
                    self._next()
            self._expect('PUNCT', ']')
            return items
        raise self._error(f'Unexpected {value!r}', token)

    def _interpolate(self, token):
        def replace(match):
            escaped, name = match.groups()
            if escaped is not None:
                return ESCAPES.get(escaped, escaped)
            if name not in self.variables:
                raise self._error(f'Undefined variable {name!r}', token)
            value = self.variables[name]
            if isinstance(value, bool):
                return 'true' if value else 'false'
            return '' if value is None else str(value)

        return ESCAPE_RE.sub(replace, token.value[1:-1])

    def _split_host(self, token, host):
        if not isinstance(host, str):
            raise self._error(f'Host should be a string, got {host!r}', token)
        match = HOST_RE.match(host)
        if not match:
            raise self._error(f'Invalid host {host!r}', token)
        port = match.group('port')
        return (
            match.group('user'),
            match.group('address'),
            int(port) if port else None,
        )

    def _add_server(self, address, user=None, port=None, roles=(),
                    properties=None):
        port = DEFAULT_SSH_PORT if port is None else port
        key = (address, port)
        server = self.servers.setdefault(key, {
            'address': address,
            'user': None,
            'roles': [],
            'port': port,
            'properties': {},
        })
        if user:
            server['user'] = _plain(user)
        server['roles'] = merge_unique(server['roles'], roles)
        server['properties'].update({
            name: _plain(value) for name, value in (properties or {}).items()
        })
        logger.debug('server %s:%s roles=%s', address, port, server['roles'])

    def _role_names(self, token, roles):
        if isinstance(roles, str):
            roles = [roles]
        if not isinstance(roles, list) or \
                not all(isinstance(role, str) for role in roles):
            raise self._error(f'Invalid roles {roles!r}', token)
        return [str(role) for role in roles]

    def _port(self, token, port):
        if port is not None and (
                not isinstance(port, int) or isinstance(port, bool)):
            raise self._error(f'Invalid port {port!r}', token)
        return port

    def _command_role(self, token, args, kwargs):
        if len(args) != 2:
            raise self._error(
                'role expects a name and a list of hosts', token)
        name, hosts = args
        role = self._role_names(token, name)
        if isinstance(hosts, str):
            hosts = [hosts]
        if not isinstance(hosts, list):
            raise self._error(f'Invalid hosts {hosts!r}', token)
        user = kwargs.pop('user', None)
        port = self._port(token, kwargs.pop('port', None))
        for host in hosts:
            host_user, address, host_port = self._split_host(token, host)
            self._add_server(
                address, host_user or user,
                port if host_port is None else host_port, role, kwargs)

    def _command_server(self, token, args, kwargs):
        if len(args) != 1:
            raise self._error('server expects one address', token)
        user, address, port = self._split_host(token, args[0])
        user = kwargs.pop('user', user)
        port = self._port(token, kwargs.pop('port', port))
        roles = self._role_names(token, kwargs.pop('roles', []))
        self._add_server(address, user, port, roles, kwargs)

    def _command_set(self, token, args, kwargs):
        if len(args) != 2 or kwargs:
            raise self._error('set expects a name and a value', token)
        name, value = args
        if not isinstance(name, str):
            raise self._error(f'Invalid setting name {name!r}', token)
        self.settings[str(name)] = _plain(value)


def _plain(value):
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, str):
        return str(value)
    return value


def parse(text, filename='<stage>') -> dict:
    """Parse stage file text into raw ``{'servers', 'settings'}`` dict."""
    return StageParser(text, filename).parse()


def loads(text, name, filename='<stage>') -> Stage:
    return Stage.from_dict(parse(text, filename), name=name)


def load(path) -> Stage:
    path = Path(path)
    logger.debug('loading stage file %s', path)
    return loads(path.read_text(), path.stem, str(path))
