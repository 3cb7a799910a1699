import doctest

from pathlib import Path

import pytest

from stagehand.deploy import dsl
from stagehand.deploy.stage import Stage


FIXTURES = Path(__file__).parents[4] / 'tests' / 'config' / 'deploy'

PRODUCTION = """\
ip = '176.112.204.92'

role :app, ["deploy@#{ip}"]
role :web, ["deploy@#{ip}"]
role :db,  ["deploy@#{ip}"]

server ip, user: 'deploy', roles: %w{web app db}

set :stage, 'production'
set :rails_env, 'production'
"""

STAGING = """\
# staging servers
web = "10.0.0.1"
role :web, [
  "deploy@#{web}",   # first web
  'deploy@10.0.0.2:2222',
]
server '10.0.0.3', user: 'ops', roles: %i[db], primary: true, port: 2200

set :stage, :staging
set :rails_env, 'staging'
set :linked_dirs, %w{log tmp}
set :keep_releases, 5
"""


def test_load_production_file():
    stage = dsl.load(FIXTURES / 'production.rb')

    assert stage.name == 'production'
    assert len(stage.targets) == 1

    target = stage.targets[0]
    assert target.address == '176.112.204.92'
    assert target.user == 'deploy'
    assert target.roles == {'web', 'app', 'db'}
    assert target.port == 22

    assert stage.settings.stage == 'production'
    assert stage.settings.rails_env == 'production'


def test_parse_merges_role_and_server_declarations():
    result = dsl.parse(PRODUCTION)

    assert result == {
        'servers': [{
            'address': '176.112.204.92',
            'user': 'deploy',
            'roles': ['app', 'web', 'db'],
            'port': 22,
            'properties': {},
        }],
        'settings': {'stage': 'production', 'rails_env': 'production'},
    }


def test_parse_multiline_and_options():
    stage = dsl.loads(STAGING, 'staging')

    assert [target.name for target in stage.targets] == [
        '10.0.0.1', '10.0.0.2:2222', '10.0.0.3:2200'
    ]
    assert [target.address for target in stage.roles('web')] == [
        '10.0.0.1', '10.0.0.2'
    ]

    db = stage.primary('db')
    assert db.user == 'ops'
    assert db.port == 2200
    assert db.properties == {'primary': True}

    assert stage.settings.stage == 'staging'
    assert type(stage.settings.stage) is str
    assert stage.settings['linked_dirs'] == ['log', 'tmp']
    assert stage.settings.get('keep_releases') == 5


def test_same_address_with_other_port_is_other_target():
    stage = dsl.loads(
        "role :app, 'deploy@10.0.0.1'\n"
        "server '10.0.0.1', roles: :web\n"
        "server 'deploy@10.0.0.1:2222', roles: [:db]\n"
        "set :stage, 'qa'\n"
        "set :rails_env, 'production'\n",
        'qa'
    )

    first, second = stage.targets
    assert first.user == 'deploy'
    assert first.roles == {'app', 'web'}
    assert second.port == 2222
    assert second.roles == {'db'}


def test_later_user_wins():
    result = dsl.parse(
        "role :app, ['root@10.0.0.1']\n"
        "server '10.0.0.1', user: 'deploy', roles: %w{app}\n"
    )
    assert result['servers'][0]['user'] == 'deploy'
    assert result['servers'][0]['roles'] == ['app']


def test_string_escapes_and_interpolation():
    result = dsl.parse(
        "name = 'it\\'s'\n"
        "port = 8080\n"
        "set :single, 'no #{name} here'\n"
        "set :double, \"#{name} on #{port}\\tnow\"\n"
        "set :nothing, nil\n"
    )
    assert result['settings'] == {
        'single': 'no #{name} here',
        'double': "it's on 8080\tnow",
        'nothing': None,
    }


def test_role_user_and_port_options():
    stage = dsl.loads(
        "role :web, ['10.0.0.1', 'ops@10.0.0.2:2200'], "
        "user: 'deploy', port: 2222\n"
        "set :stage, 'qa'\n"
        "set :rails_env, 'production'\n",
        'qa'
    )

    first, second = stage.targets
    assert first.ssh_target == 'deploy@10.0.0.1'
    assert first.port == 2222
    assert first.properties == {}
    assert second.ssh_target == 'ops@10.0.0.2'
    assert second.port == 2200


@pytest.mark.parametrize('text, message, line', [
    ("server ip, user: 'deploy', roles: %w{web}\n",
     "Undefined variable 'ip'", 1),
    ("set :stage, \"#{stage}\"\n", "Undefined variable 'stage'", 1),
    ("set :stage, 'production\n", 'Unterminated string', 1),
    ("\ndeploy_to '/srv/app'\n", "Unknown statement 'deploy_to'", 2),
    ("role :web, ['deploy@10.0.0.1'\n", "Missing ']'", None),
    ("set :stage\n", 'set expects a name and a value', 1),
    ("set :stage, 'a' 'b'\n", "Expected ','", 1),
    ("server '10.0.0.1', user: 'deploy', :web\n",
     'Positional argument after keyword argument', 1),
    ("set :stage, @name\n", "Unexpected character '@'", 1),
    ("role :web\n", 'role expects a name and a list of hosts', 1),
    ("server '10.0.0.1', port: 'ssh'\n", "Invalid port 'ssh'", 1),
])
def test_syntax_errors(text, message, line):
    with pytest.raises(dsl.StageSyntaxError) as err:
        dsl.parse(text, 'broken.rb')

    assert message in str(err.value)
    assert str(err.value).startswith('broken.rb:')
    if line is not None:
        assert err.value.line == line


def test_syntax_error_is_value_error():
    with pytest.raises(ValueError):
        dsl.loads('set', 'broken')


@pytest.mark.parametrize('server', [
    "server '999.1.1.1', user: 'deploy', roles: %w{web}",
    "server 'example.com', user: 'deploy', roles: %w{web}",
    "server '10.0.0.1', user: 'deploy', roles: %w{worker}",
    "server '10.0.0.1', user: 'deploy', roles: []",
    "server '10.0.0.1', roles: %w{web}",
    "server '10.0.0.1', user: '', roles: %w{web}",
    "server 'deploy@10.0.0.1:0', roles: %w{web}",
    "server '10.0.0.1', user: 'deploy', roles: %w{web}, port: 0",
    "server '10.0.0.1', user: 'deploy', roles: %w{web}, port: '22'",
])
def test_invalid_targets(server):
    text = f"{server}\nset :stage, 'prod'\nset :rails_env, 'production'\n"
    with pytest.raises(ValueError):
        dsl.loads(text, 'production')


@pytest.mark.parametrize('settings', [
    "set :stage, 'production'\n",
    "set :rails_env, 'production'\n",
    "set :stage, ''\nset :rails_env, 'production'\n",
])
def test_invalid_settings(settings):
    text = "server '10.0.0.1', user: 'deploy', roles: %w{web}\n" + settings
    with pytest.raises(ValueError):
        dsl.loads(text, 'production')


@pytest.mark.parametrize('text, name', [
    (PRODUCTION, 'production'),
    (STAGING, 'staging'),
])
def test_render_and_json_are_read_back_unchanged(text, name):
    stage = dsl.loads(text, name)

    assert dsl.loads(stage.render(), name) == stage
    assert Stage.loads(stage.dumps()) == stage


def test_render_production():
    stage = dsl.load(FIXTURES / 'production.rb')

    assert stage.render() == (
        "# production stage\n"
        "server '176.112.204.92', user: 'deploy', roles: %w{web app db}\n"
        "\n"
        "set :stage, 'production'\n"
        "set :rails_env, 'production'\n"
    )


def test_doctests():
    result = doctest.testmod(dsl)
    assert result.attempted
    assert not result.failed
