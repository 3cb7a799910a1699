"""Stage record: deployment targets plus stage variables of one stage file.

Records are validated once on creation and expose read-only properties
afterwards, a stage is loaded at start and kept for the process lifetime.
"""
import json
import ipaddress

from pathlib import Path

import cerberus
import jinja2

from stagehand.app.settings import validate_schema


ROLES = ('web', 'app', 'db')
DEFAULT_SSH_PORT = 22

TEMPLATES_DIR = Path(__file__).parent / 'templates'

# names and values the stage file format can write back
NAME_RULES = {'type': 'string', 'regex': r'[A-Za-z_]\w*'}
SCALAR_RULES = {'type': ['string', 'integer', 'boolean'], 'nullable': True}
VALUE_RULES = {
    'type': ['string', 'integer', 'boolean', 'list'],
    'nullable': True,
    'schema': SCALAR_RULES,
}


class StageValidator(cerberus.Validator):
    def _check_with_ipv4(self, field, value):
        try:
            ipaddress.IPv4Address(value)
        except ValueError:
            self._error(field, f"'{value}' is not a valid IPv4 address")


class DeploymentTarget:
    SCHEMA = {
        'address': {
            'type': 'string', 'required': True, 'check_with': 'ipv4'
        },
        'user': {'type': 'string', 'required': True, 'empty': False},
        'roles': {
            'type': 'list',
            'required': True,
            'empty': False,
            'allowed': list(ROLES),
        },
        'port': {'type': 'integer', 'min': 1, 'max': 65535},
        'properties': {
            'type': 'dict',
            'keysrules': dict(
                NAME_RULES, forbidden=['user', 'port', 'roles']),
            'valuesrules': VALUE_RULES,
        },
    }

    def __init__(self, address, user, roles, port=DEFAULT_SSH_PORT,
                 properties=None):
        self._data = validate_schema(self.SCHEMA, {
            'address': address,
            'user': user,
            'roles': list(roles),
            'port': port,
            'properties': dict(properties or {}),
        }, StageValidator)
        self._roles = frozenset(self._data['roles'])

    @property
    def address(self) -> str:
        return self._data['address']

    @property
    def user(self) -> str:
        return self._data['user']

    @property
    def roles(self) -> frozenset:
        return self._roles

    @property
    def port(self) -> int:
        return self._data['port']

    @property
    def properties(self) -> dict:
        return dict(self._data['properties'])

    @property
    def ssh_target(self) -> str:
        return f'{self.user}@{self.address}'

    @property
    def name(self) -> str:
        if self.port != DEFAULT_SSH_PORT:
            return f'{self.address}:{self.port}'
        return self.address

    def has_role(self, *names) -> bool:
        return any(name in self._roles for name in names)

    def as_dict(self) -> dict:
        return {
            'address': self.address,
            'user': self.user,
            'roles': [role for role in ROLES if role in self._roles],
            'port': self.port,
            'properties': self.properties,
        }

    def __eq__(self, other):
        if not isinstance(other, DeploymentTarget):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __hash__(self):
        return hash((self.address, self.port, self.user, self._roles))

    def __repr__(self):
        roles = ','.join(sorted(self._roles))
        return f'<DeploymentTarget {self.ssh_target}:{self.port} [{roles}]>'


class StageSettings:
    SCHEMA = {
        'stage': {'type': 'string', 'required': True, 'empty': False},
        'rails_env': {'type': 'string', 'required': True, 'empty': False},
    }

    VARIABLES_SCHEMA = {
        'variables': {
            'type': 'dict',
            'keysrules': NAME_RULES,
            'valuesrules': VALUE_RULES,
        },
    }

    def __init__(self, variables):
        validate_schema(self.VARIABLES_SCHEMA, {'variables': variables})
        self._data = validate_schema(
            self.SCHEMA, dict(variables), cerberus_validator)

    @property
    def stage(self) -> str:
        return self._data['stage']

    @property
    def rails_env(self) -> str:
        return self._data['rails_env']

    def get(self, key, default=None):
        return self._data.get(key, default)

    def __getitem__(self, key):
        return self._data[key]

    def __contains__(self, key):
        return key in self._data

    def as_dict(self) -> dict:
        return dict(self._data)

    def __eq__(self, other):
        if not isinstance(other, StageSettings):
            return NotImplemented
        return self._data == other._data

    def __repr__(self):
        return f'<StageSettings {self.stage} rails_env={self.rails_env}>'


def cerberus_validator(schema):
    """Validator keeping stage variables not described in schema."""
    return cerberus.Validator(schema, allow_unknown=True)


class Stage:
    SCHEMA = {
        'name': {'type': 'string', 'nullable': True},
        'servers': {
            'type': 'list',
            'schema': {
                'type': 'dict',
                'schema': {
                    'address': {'required': True},
                    'user': {'required': True},
                    'roles': {'type': 'list', 'required': True},
                    'port': {},
                    'properties': {'type': 'dict', 'nullable': True},
                },
            },
        },
        'settings': {'type': 'dict'},
    }

    def __init__(self, name, targets, settings):
        self.name = name
        self._targets = tuple(targets)
        self._settings = settings

    @property
    def targets(self) -> tuple:
        return self._targets

    @property
    def settings(self) -> StageSettings:
        return self._settings

    def roles(self, *names):
        """Targets having any of given roles, all targets without names."""
        unknown = [name for name in names if name not in ROLES]
        if unknown:
            raise ValueError(f'Unknown roles {unknown}, allowed: {ROLES}')
        if not names:
            return list(self._targets)
        return [target for target in self._targets if target.has_role(*names)]

    def primary(self, role):
        return next(iter(self.roles(role)), None)

    def as_dict(self) -> dict:
        return {
            'name': self.name,
            'servers': [target.as_dict() for target in self._targets],
            'settings': self._settings.as_dict(),
        }

    @classmethod
    def from_dict(cls, data, name=None):
        if not isinstance(data, dict):
            raise ValueError(f"Stage should be a mapping, got {type(data)}")
        data = validate_schema(cls.SCHEMA, data)
        targets = [
            DeploymentTarget(
                server['address'], server['user'], server['roles'],
                server.get('port', DEFAULT_SSH_PORT),
                server.get('properties'),
            )
            for server in data.get('servers', [])
        ]
        settings = StageSettings(data.get('settings', {}))
        return cls(name or data.get('name') or settings.stage,
                   targets, settings)

    def dumps(self) -> str:
        return json.dumps(self.as_dict(), indent=2)

    @classmethod
    def loads(cls, text, name=None):
        return cls.from_dict(json.loads(text), name)

    def render(self) -> str:
        """Render stage back to the stage file format."""
        env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(TEMPLATES_DIR)),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.filters['literal'] = to_literal
        return env.get_template('stage.rb').render(stage=self, roles=ROLES)

    def __eq__(self, other):
        if not isinstance(other, Stage):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self):
        return f'<Stage {self.name} targets={len(self._targets)}>'


def to_literal(value) -> str:
    """Format python value as stage file literal.

    >>> to_literal('production')
    "'production'"
    >>> to_literal(["it's", 2, None, True])
    "['it\\\\'s', 2, nil, true]"
    """
    if value is None:
        return 'nil'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        return '[' + ', '.join(to_literal(item) for item in value) + ']'
    if isinstance(value, str):
        escaped = value.replace('\\', '\\\\').replace("'", "\\'")
        return f"'{escaped}'"
    raise ValueError(f"Can't write {value!r} to stage file")
