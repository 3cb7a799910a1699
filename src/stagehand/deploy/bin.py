import os
import sys
import logging
import importlib

from pathlib import Path


SETTINGS_MODULES = ['app.settings.', 'settings.', '']


def find_settings_module(stage):
    for module in SETTINGS_MODULES:
        module_path = f'{module}{stage}'
        try:
            importlib.import_module(module_path)
        except ImportError:
            continue
        return module_path
    return None


def run(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print('Usage: stagehand <stage> <namespace.task[:args]>... [-v]')
        return 1

    sys.path.append(str(Path().cwd()))
    stage_name, commands = argv[0], argv[1:]
    logging.basicConfig(
        level=logging.DEBUG if '-v' in commands else logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s %(message)s'
    )

    module_path = find_settings_module(stage_name)
    if module_path:
        os.environ['SETTINGS'] = module_path

    try:
        from .settings import SETTINGS
        from .manager import DeployTasksManager

        manager = DeployTasksManager(SETTINGS.load_stage(stage_name))
        manager.run(*commands)
    except KeyboardInterrupt:
        pass
    finally:
        os.environ.pop('SETTINGS', None)
    return 0
