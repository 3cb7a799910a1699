import asyncio
import logging
import typing

from .os import run_in_shell, RunInShellError


def register(method: typing.Any) -> typing.Any:
    method.__task__ = True
    return method


def _register_hook(name: str, method: typing.Callable):
    def decorator(hook_func):
        hooks = getattr(method, name, [])
        hooks.append(hook_func)
        setattr(method, name, hooks)
        return hook_func
    return decorator


def before(method: typing.Callable):
    return _register_hook('__task__before__', method)


def after(method: typing.Callable):
    return _register_hook('__task__after__', method)


register.before = before
register.after = after


class TaskRunError(Exception):
    pass


def parse_command(command: str) -> typing.Tuple[str, str, list]:
    """Split ``namespace.task[:arg1,arg2]`` into its parts.

    >>> parse_command('stage.hosts')
    ('stage', 'hosts', [])
    >>> parse_command('app.restart:web,2')
    ('app', 'restart', ['web', '2'])
    """
    if '.' not in command:
        raise ValueError(
            f'Command "{command}" should look like "namespace.task"')
    namespace, name = command.split('.', 1)
    args = []
    if ':' in name:
        name, task_args = name.split(':', 1)
        args = task_args.split(',')
    return namespace, name, args


class Tasks:
    NAMESPACE = ''

    def __init__(self, manager):
        self._manager = manager
        self._logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def get_namespace(cls) -> str:
        namespace = cls.NAMESPACE
        if not namespace:
            raise ValueError('Please define NAMESPACE for {}'.format(cls))
        return namespace

    async def _local(self, command, interactive=False, debug=True):
        try:
            if self._manager.debug and debug:
                print(f"[local] {command}")
            return await run_in_shell(command, interactive)
        except RunInShellError as err:
            raise TaskRunError(err)


class TasksManager:
    def __init__(self):
        self.tasks = {}
        self.debug = False
        self._logger = logging.getLogger(self.__class__.__name__)

    def register(self, task_class):
        self.tasks[task_class.get_namespace()] = task_class

    def run_task(self, task_class, name, args):
        task = getattr(task_class(self), name)
        return asyncio.run(task(*args))

    def run_hooks(self, task_class, name, hook_name, instance=None):
        instance = instance or task_class(self)
        task = getattr(instance, name)
        hooks = getattr(task, f'__task__{hook_name}__', [])

        if not hooks:
            return

        async def _run_hooks_gather():
            await asyncio.gather(*[hook(instance) for hook in hooks])

        asyncio.run(_run_hooks_gather())

    def _plan(self, commands):
        for command in commands:
            namespace, name, args = parse_command(command)
            if namespace not in self.tasks:
                raise KeyError(f'No tasks registered for: "{namespace}"')
            task_class = self.tasks[namespace]

            method = getattr(task_class, name, None)
            if method is None:
                self._logger.warning(
                    'Method "%s" in %s not found', name, task_class)
                continue

            is_task = getattr(method, '__task__', False) and \
                name == method.__name__
            yield task_class, name, args, is_task

    def run(self, *commands) -> typing.Any:
        """Run before hooks of all commands, then tasks, then after hooks,
        result of last task is returned."""
        commands = list(commands)
        if '-v' in commands:
            commands.remove('-v')
            self.debug = True

        plan = list(self._plan(commands))
        for task_class, name, _, _ in plan:
            self.run_hooks(task_class, name, 'before')

        result = None
        for task_class, name, args, is_task in plan:
            if is_task:
                result = self.run_task(task_class, name, args)

        for task_class, name, _, _ in plan:
            self.run_hooks(task_class, name, 'after')

        return result
