import os
import inspect
import logging
import importlib

from pathlib import Path

import cerberus

from stagehand.utils.collections import update_dict_recur

from .utils import create_settings


logger = logging.getLogger(__name__)


def validate_schema(schema, settings, validator_class=cerberus.Validator):
    validator = validator_class(schema)
    if not validator.validate(settings):
        raise ValueError(f"Error validation settings {validator.errors}")
    return validator.document


def settings_module():
    """Return module configured by `SETTINGS` env variable or None."""
    module_path = os.environ.get('SETTINGS')
    if not module_path:
        return None
    try:
        return importlib.import_module(module_path)
    except ModuleNotFoundError:
        logger.warning('Settings module "%s" not found', module_path)
        return None


def settings_dir():
    """Directory of current settings module, cwd if not configured."""
    module = settings_module()
    if module is None:
        return Path.cwd()
    return Path(inspect.getfile(module)).resolve().parent


class ComponentSettings:
    KEY = ''
    SCHEMA = {}
    DEFAULT = {}

    def __init__(self):
        key = self.__class__.KEY
        if not key:
            raise ValueError("Provide 'KEY' for settings")

        module = settings_module()
        if module is not None:
            app_settings = getattr(module, 'SETTINGS', {})
        else:
            app_settings = create_settings()

        settings = update_dict_recur(
            self.__class__.DEFAULT, app_settings.get(key, {}))
        self._data = validate_schema(self.__class__.SCHEMA, settings)
