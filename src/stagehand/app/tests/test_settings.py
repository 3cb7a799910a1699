import os
import importlib

import pytest

from stagehand.app.settings import ComponentSettings, validate_schema
from stagehand.app.utils import create_settings


class SshSettings(ComponentSettings):
    KEY = 'ssh'
    SCHEMA = {
        'port': {'type': 'integer'},
        'forward_agent': {'type': 'boolean'},
        'options': {'type': 'list', 'schema': {'type': 'string'}},
        'user': {'type': 'string'},
    }
    DEFAULT = {
        'port': 22,
        'forward_agent': False,
        'options': [],
    }


class ProductionModule:
    def __init__(self):
        self.SETTINGS = create_settings({
            'ssh': {'port': 2222, 'options': ['Compression=yes']},
        }, {
            'ssh': {'user': 'deploy'},
        })


class BrokenModule:
    def __init__(self):
        self.SETTINGS = create_settings({'ssh': {'port': 'twenty-two'}})


MODULES = {
    'settings.production': ProductionModule,
    'settings.broken': BrokenModule,
}


def import_fake_module(name):
    if name not in MODULES:
        raise ModuleNotFoundError(name)
    return MODULES[name]()


@pytest.mark.parametrize('env, settings', [
    ({'SETTINGS': 'settings.production'}, {
        'port': 2222, 'forward_agent': False,
        'options': ['Compression=yes'], 'user': 'deploy'
    }),
    ({
        'SETTINGS': 'settings.production',
        'SETTINGS_SSH_FORWARD_AGENT': 'true',
        'SETTINGS_SSH_PORT': '2200',
    }, {
        'port': 2200, 'forward_agent': True,
        'options': ['Compression=yes'], 'user': 'deploy'
    }),
    ({'SETTINGS_SSH_USER': 'ops'}, {
        'port': 22, 'forward_agent': False, 'options': [], 'user': 'ops'
    }),
    ({'SETTINGS': 'settings.missing'}, {
        'port': 22, 'forward_agent': False, 'options': []
    }),
])
def test_success_load_settings(monkeypatch, env, settings):
    monkeypatch.setattr(importlib, 'import_module', import_fake_module)
    monkeypatch.setattr(os, 'environ', env)

    assert SshSettings()._data == settings


def test_failed_validation(monkeypatch):
    monkeypatch.setattr(importlib, 'import_module', import_fake_module)
    monkeypatch.setattr(os, 'environ', {'SETTINGS': 'settings.broken'})

    with pytest.raises(ValueError):
        SshSettings()


def test_key_required():
    class NoKeySettings(ComponentSettings):
        pass

    with pytest.raises(ValueError):
        NoKeySettings()


def test_create_settings_skips_malformed_env(monkeypatch):
    monkeypatch.setattr(os, 'environ', {
        'SETTINGS_': '1',
        'SETTINGS_SSH': '1',
        'SETTINGS_SSH_': '1',
        'MY_SETTINGS_SSH_PORT': '1',
        'SETTINGS_DEPLOY_STAGES_DIR': 'deploy/stages',
    })
    assert create_settings() == {'deploy': {'stages_dir': 'deploy/stages'}}


def test_validate_schema_returns_document():
    document = validate_schema({'port': {'type': 'integer'}}, {'port': 22})
    assert document == {'port': 22}

    with pytest.raises(ValueError) as err:
        validate_schema({'port': {'type': 'integer'}}, {'port': '22'})
    assert 'port' in str(err.value)
