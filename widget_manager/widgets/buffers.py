"""
Out-of-band binary buffers referenced from widget state by path
"""

from typing import Any, Dict, List, Sequence, Tuple

BINARY_TYPES = (bytes, bytearray, memoryview)


def put_buffers(state: Dict[str, Any], buffer_paths: Sequence[Sequence[Any]], buffers: Sequence[Any]) -> None:
    """
    Place each buffer into ``state`` at its path, in place.

    A path is a list of dict keys and list indexes; the last element names
    the slot that receives the buffer.
    """
    for path, buffer in zip(buffer_paths, buffers):
        if not path:
            continue
        obj = state
        for key in path[:-1]:
            obj = obj[key]
        obj[path[-1]] = buffer


def remove_buffers(state: Dict[str, Any]) -> Tuple[Dict[str, Any], List[List[Any]], List[bytes]]:
    """
    Split binary values out of ``state``.

    Returns a copy of the state without binary values, their paths and the
    buffers themselves. Binary dict values are dropped; binary list items are
    replaced by None so indexes stay stable.
    """
    buffer_paths: List[List[Any]] = []
    buffers: List[bytes] = []
    
    def separate(value, path):
        if isinstance(value, dict):
            cleaned = {}
            for key, item in value.items():
                if isinstance(item, BINARY_TYPES):
                    buffer_paths.append(path + [key])
                    buffers.append(bytes(item))
                else:
                    cleaned[key] = separate(item, path + [key])
            return cleaned
        if isinstance(value, (list, tuple)):
            cleaned_list = []
            for index, item in enumerate(value):
                if isinstance(item, BINARY_TYPES):
                    buffer_paths.append(path + [index])
                    buffers.append(bytes(item))
                    cleaned_list.append(None)
                else:
                    cleaned_list.append(separate(item, path + [index]))
            return cleaned_list
        return value
        
    return separate(state, []), buffer_paths, buffers
