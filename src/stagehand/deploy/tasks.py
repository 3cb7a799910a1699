import functools
import tempfile

from contextlib import contextmanager
from pathlib import Path

from watchgod import awatch

from stagehand.utils.tasks import Tasks, TaskRunError, register

from . import dsl
from .stage import Stage, DEFAULT_SSH_PORT
from .settings import SETTINGS


def as_root(func):
    """Task will run from root, sets to self.user."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        with self._set_user('root'):
            return await func(self, *args, **kwargs)

    return wrapper


def nohost(task):
    task.__nohost__ = True
    return task


def onehost(task):
    task.__onehost__ = True
    return task


def firsthost(task):
    task.__firsthost__ = True
    return task


def roles(*names):
    """Run task only on targets having any of given roles."""
    def decorator(task):
        task.__roles__ = names
        return task
    return decorator


class DeployTasks(Tasks):
    def __init__(self, manager, lock, target=None):
        self.target = target
        if target is not None:
            self.host_name = target.name
            self.address = target.address
            self.port = target.port
            self.user = target.user
        else:
            self.host_name = '__nohost__'
            self.address = None
            self.port = DEFAULT_SSH_PORT
            self.user = None

        self._lock = lock

        super().__init__(manager)

    @property
    def stage(self):
        return self._manager.stage

    @contextmanager
    def _set_user(self, user):
        old_user = self.user
        self.user = user
        try:
            yield self
        finally:
            self.user = old_user

    async def _run(self, command, strip=True, interactive=False) -> str:
        if self.address is None:
            raise TaskRunError(
                f'Task {self.__class__.__name__} has no target to run '
                f'"{command}", mark it with host or role')
        command = str(command).replace('"', r'\"').replace('$(', r'\$(')
        interactive_flag = '-t' if interactive else ''
        if self._manager.debug:
            print(f"[{self.host_name}:{self.user}@{self.address}] {command}")
        response = await self._local(
            f"ssh {interactive_flag} -p {self.port} "
            f"{self.user}@{self.address} "
            f'"{command}"',
            interactive=interactive, debug=False
        ) or ''
        if strip:
            response = response.strip()
        return response

    async def _upload(self, local_path: Path, path: Path = None):
        if not path:
            path = Path('~/', local_path.name)
        await self._local(
            f'rsync -az -e "ssh -p {self.port}" '
            f'{local_path} {self.user}@{self.address}:{path}'
        )


class StageTasks(DeployTasks):
    NAMESPACE = 'stage'

    @register
    @nohost
    async def hosts(self):
        """List stage targets with their roles."""
        targets = self.stage.roles()
        for target in targets:
            roles = ', '.join(sorted(target.roles))
            print(f"{target.ssh_target} -p {target.port} [{roles}]")
        return targets

    @register
    @nohost
    async def settings(self):
        variables = self.stage.settings.as_dict()
        for key, value in variables.items():
            print(f"{key} = {value!r}")
        return variables

    @register
    @nohost
    async def check(self):
        stage = self.stage
        written = {
            'json': lambda: Stage.loads(stage.dumps(), stage.name),
            'stage file': lambda: dsl.loads(stage.render(), stage.name),
        }
        for kind, read_back in written.items():
            try:
                same = read_back() == stage
            except ValueError as err:
                raise TaskRunError(
                    f"Stage '{stage.name}' written as {kind} "
                    f"is invalid: {err}")
            if not same:
                raise TaskRunError(
                    f"Stage '{stage.name}' changes when written as {kind}")
        print(
            f"Stage '{stage.name}' ok: {len(stage.targets)} target(s), "
            f"rails_env={stage.settings.rails_env}"
        )
        return True

    @register
    @nohost
    async def dump(self):
        content = self.stage.dumps()
        print(content)
        return content

    @register
    @nohost
    async def render(self):
        content = self.stage.render()
        print(content, end='')
        return content

    @register
    @nohost
    async def watch(self):
        path = SETTINGS.stage_path(self.stage.name)
        self._logger.info('Watching %s for changes', path)
        async for changes in awatch(path.parent):
            if all(Path(changed) != path for _, changed in changes):
                continue
            self._reload(path)

    def _reload(self, path):
        try:
            stage = SETTINGS.load_stage(self.stage.name)
        except ValueError as err:
            self._logger.error('Stage file %s is invalid: %s', path, err)
            return None
        self._manager.stage = stage
        self._logger.info(
            'Stage file %s reloaded: %s target(s)', path, len(stage.targets))
        return stage

    @register
    async def uptime(self):
        result = await self._run('uptime')
        print(f"[{self.host_name}] {result}")
        return result

    @register
    async def sync(self):
        """Upload stage as json to target user home."""
        async with self._lock:
            with tempfile.TemporaryDirectory() as tmp_dir:
                cache = Path(tmp_dir) / f'.stagehand-{self.stage.name}.json'
                cache.write_text(self.stage.dumps())
                await self._upload(cache)

    @register
    @onehost
    async def ssh(self):
        return await self._run('bash', interactive=True)

    @register
    @onehost
    @as_root
    async def root(self):
        return await self._run('bash', interactive=True)
