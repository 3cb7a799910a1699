from copy import deepcopy
from typing import Iterable


def update_dict_recur(
        original: dict, from_dict: dict, copy: bool = True) -> dict:
    """Update dict recursively.

    >>> defaults = {'stages_dir': 'config/deploy', 'ssh': {'port': 22}}
    >>> override = {'ssh': {'user': 'deploy'}, 'debug': True}
    >>> result = update_dict_recur(defaults, override, copy=False)
    >>> result is defaults  # original dict not copied
    True
    >>> result['ssh']  # merged inside
    {'port': 22, 'user': 'deploy'}
    >>> result['debug']
    True
    >>> defaults = {'ssh': {'port': 22}}
    >>> result = update_dict_recur(defaults, {'ssh': {'port': 2222}})
    >>> result is not defaults, defaults['ssh']['port']
    (True, 22)
    >>> result['ssh']['port']
    2222
    """
    if copy:
        original = deepcopy(original)

    for key, value in from_dict.items():
        if isinstance(value, dict) and isinstance(original.get(key), dict):
            original[key] = update_dict_recur(original[key], value)
        else:
            original[key] = value

    return original


def merge_unique(*iterables: Iterable) -> list:
    """Concatenate iterables dropping repeated items, first seen wins.

    >>> merge_unique(['app', 'web'], ('web', 'db'))
    ['app', 'web', 'db']
    """
    result = []
    for iterable in iterables:
        for item in iterable:
            if item not in result:
                result.append(item)
    return result
