import asyncio
import logging


logger = logging.getLogger(__name__)


class RunInShellError(Exception):
    pass


async def run_in_shell(command: str, interactive: bool = False) -> str:
    stdout = stderr = asyncio.subprocess.PIPE
    if interactive:
        stdout = stderr = None
    logger.debug('shell: %s', command)
    proc = await asyncio.create_subprocess_shell(
        command, stdout=stdout, stderr=stderr
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise RunInShellError(
            f'Shell command "{command}" finished with '
            f'error code [{proc.returncode}]:\n'
            f'{stderr.decode() if stderr else ""}'
        )
    if stdout:
        return stdout.decode()
    return ''
