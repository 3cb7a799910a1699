import asyncio

from stagehand.utils.tasks import TasksManager, TaskRunError

from .settings import SETTINGS
from .tasks import DeployTasks


class DeployTasksManager(TasksManager):
    def __init__(self, stage, task_classes=None):
        super().__init__()

        self.stage = stage
        self.debug = SETTINGS.debug

        if task_classes is None:
            task_classes = SETTINGS.tasks_classes
        for class_ in task_classes:
            self.register(class_)

    def run_hooks(self, task_class, name, hook_name, instance=None):
        if issubclass(task_class, DeployTasks):
            instance = task_class(self, None)
        super().run_hooks(task_class, name, hook_name, instance=instance)

    def run_task(self, task_class, name, args):
        if not issubclass(task_class, DeployTasks):
            return super().run_task(task_class, name, args)

        targets = self._prepare_targets(task_class, name)
        if not targets:
            self._logger.warning(
                'No targets in stage "%s" for task %s.%s',
                self.stage.name, task_class.get_namespace(), name)
            return None

        async def run():
            lock = asyncio.Lock()
            grouped_tasks = []
            for target in targets:
                task = getattr(task_class(self, lock, target), name)
                key = target.address if target is not None else None
                task_added = False
                for group in grouped_tasks:
                    if key not in group:
                        group[key] = task
                        task_added = True
                        break
                if not task_added:
                    grouped_tasks.append({key: task})

            results = []
            for tasks in grouped_tasks:
                coroutines = [task(*args) for task in tasks.values()]
                results.extend(await asyncio.gather(*coroutines))
            return results[0] if len(results) == 1 else results

        return asyncio.run(run())

    def _prepare_targets(self, task_class, name):
        method = getattr(task_class, name)
        if getattr(method, '__nohost__', False):
            return [None]

        targets = self.stage.roles(*getattr(method, '__roles__', ()))

        if getattr(method, '__firsthost__', False):
            return targets[:1]

        if getattr(method, '__onehost__', False) and len(targets) > 1:
            for index, target in enumerate(targets, start=1):
                roles = ', '.join(sorted(target.roles))
                print(f" ({index}) - {target.ssh_target} [{roles}]")
            answer = input('Please choose host to run task: ').strip()
            if not answer.isdigit() or \
                    not 1 <= int(answer) <= len(targets):
                raise TaskRunError(
                    f'Choose host number from 1 to {len(targets)}, '
                    f'got "{answer}"')
            targets = [targets[int(answer) - 1]]

        return targets
