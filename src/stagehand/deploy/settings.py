import inspect
import logging
import importlib

from pathlib import Path

from stagehand.app.settings import ComponentSettings, settings_dir

from . import dsl
from .stage import Stage


logger = logging.getLogger(__name__)

STAGE_EXTENSIONS = ('.rb', '.json')


class DeploySettings(ComponentSettings):
    KEY = 'deploy'
    SCHEMA = {
        'stages_dir': {'type': 'string', 'empty': False},
        'tasks': {'type': 'list', 'schema': {'type': 'string'}},
        'default_tasks': {'type': 'list', 'schema': {'type': 'string'}},
        'debug': {'type': 'boolean'},
    }
    DEFAULT = {
        'stages_dir': 'config/deploy',
        'default_tasks': [
            'stagehand.deploy.tasks:StageTasks',
        ],
        'tasks': [],
        'debug': False,
    }

    @property
    def stages_dir(self) -> Path:
        stages_dir = Path(self._data['stages_dir'])
        if stages_dir.is_absolute():
            return stages_dir
        for root in (Path.cwd(), settings_dir()):
            if (root / stages_dir).is_dir():
                return root / stages_dir
        return Path.cwd() / stages_dir

    @property
    def debug(self) -> bool:
        return self._data['debug']

    def stage_path(self, name: str) -> Path:
        for extension in STAGE_EXTENSIONS:
            path = self.stages_dir / f'{name}{extension}'
            if path.exists():
                return path
        raise ValueError(
            f'Stage "{name}" not found in {self.stages_dir}, '
            f'expected one of {[name + ext for ext in STAGE_EXTENSIONS]}'
        )

    def load_stage(self, name: str) -> Stage:
        path = self.stage_path(name)
        logger.info('Loading stage "%s" from %s', name, path)
        if path.suffix == '.json':
            return Stage.loads(path.read_text(), name)
        return dsl.load(path)

    @property
    def tasks_classes(self):
        tasks = self._data['default_tasks'] + self._data['tasks']
        return self._find_classes(tasks, 'DeployTasks')

    def _find_classes(self, paths, base_name):
        """Import `module[:Class]` paths, without class take the one
        defined in module which has `base_name` among its bases."""
        classes = []
        for path in paths:
            module_path, _, class_name = path.partition(':')
            module = importlib.import_module(module_path)
            if not class_name:
                class_name = next((
                    name
                    for name, value in inspect.getmembers(
                        module, inspect.isclass)
                    if name != base_name and
                    value.__module__ == module.__name__ and
                    any(base.__name__ == base_name for base in value.__mro__)
                ), '')

            if not class_name:
                raise ValueError(
                    f"Can't find subclassed {base_name} in {module}")
            classes.append(getattr(module, class_name))
        return classes


SETTINGS = DeploySettings()
