import os

from stagehand.utils.collections import update_dict_recur


ENV_PREFIX = 'SETTINGS_'


def _convert_value(value):
    """Convert value from env to python equvalent."""
    if value == 'false':
        value = False
    elif value == 'true':
        value = True
    elif value.isdigit():
        value = int(value)
    return value


def create_settings(settings: dict = None, update_with: dict = None):
    """Create settings dict, overrided by env.

    `SETTINGS_DEPLOY_DEBUG=true` sets `settings['deploy']['debug']`, the
    last part keeps underscores: `SETTINGS_DEPLOY_STAGES_DIR` sets
    `settings['deploy']['stages_dir']`.
    """
    settings = settings or {}
    if update_with:
        settings = update_dict_recur(settings, update_with)

    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts = key[len(ENV_PREFIX):].lower().split('_', 1)
        if len(parts) != 2 or not all(parts):
            continue
        section, name = parts
        settings.setdefault(section, {})[name] = _convert_value(value)
    return settings
