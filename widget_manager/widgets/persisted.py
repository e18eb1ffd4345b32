"""
Reading and writing the widget state blob kept in notebook metadata
"""

import base64
import binascii
from typing import Any, Callable, Dict, Iterable, List

from .. import config
from ..core.exceptions import InvalidMessageError, UnsupportedStateError
from .buffers import put_buffers, remove_buffers


def is_versioned(blob: Dict[str, Any]) -> bool:
    """True for the ``{version_major, version_minor, state}`` form"""
    return "version_major" in blob and isinstance(blob.get("state"), dict)


def state_records(blob: Dict[str, Any], max_major: int = config.DOCUMENT_CONFIG["state_version_major"]) -> Dict[str, Dict[str, Any]]:
    """
    Model records of a state blob, keyed by model id
    
    Raises:
        UnsupportedStateError: Versioned blob newer than ``max_major``
    """
    if not blob:
        return {}
    if is_versioned(blob):
        major = blob.get("version_major")
        if not isinstance(major, int) or major > max_major:
            raise UnsupportedStateError(major)
        return blob["state"]
    return blob


def filter_state(blob: Dict[str, Any], exists: Callable[[str], bool]) -> Dict[str, Any]:
    """Drop records whose id ``exists``; the blob keeps its form"""
    if not blob:
        return {}
    if is_versioned(blob):
        filtered = dict(blob)
        filtered["state"] = {key: record for key, record in blob["state"].items() if not exists(key)}
        return filtered
    return {key: record for key, record in blob.items() if not exists(key)}


def decode_buffer(entry: Dict[str, Any]) -> bytes:
    """Decode one ``{path, data, encoding}`` buffer entry"""
    encoding = entry.get("encoding", "base64")
    data = entry.get("data", "")
    try:
        if encoding == "base64":
            return base64.b64decode(data)
        if encoding == "hex":
            return binascii.unhexlify(data)
    except (binascii.Error, ValueError) as e:
        raise InvalidMessageError(f"Could not decode {encoding} buffer", {"path": entry.get("path"), "error": str(e)})
    raise InvalidMessageError(f"Unknown buffer encoding {encoding!r}", {"path": entry.get("path")})


def record_state(record: Dict[str, Any]) -> Dict[str, Any]:
    """The record's state with its stored buffers put back in place"""
    state = dict(record.get("state") or {})
    entries = record.get("buffers") or []
    put_buffers(state, [entry["path"] for entry in entries], [decode_buffer(entry) for entry in entries])
    return state


def model_record(model, drop_defaults: bool = False) -> Dict[str, Any]:
    """Serialize a model into a persisted record (buffers base64 encoded)"""
    state, buffer_paths, buffers = remove_buffers(model.serialize_state(model.get_state(drop_defaults)))
    record = {
        "model_name": model.name,
        "model_module": model.module,
        "model_module_version": model.module_version,
        "state": state,
    }
    if buffers:
        record["buffers"] = [
            {"path": path, "data": base64.b64encode(buffer).decode("ascii"), "encoding": "base64"}
            for path, buffer in zip(buffer_paths, buffers)
        ]
    return record


def build_state(models: Iterable[Any], drop_defaults: bool = False) -> Dict[str, Any]:
    """The versioned state blob for ``models``"""
    records: Dict[str, Any] = {}
    for model in models:
        records[model.model_id] = model_record(model, drop_defaults)
    return {
        "version_major": config.DOCUMENT_CONFIG["state_version_major"],
        "version_minor": config.DOCUMENT_CONFIG["state_version_minor"],
        "state": records,
    }


def record_ids(blob: Dict[str, Any]) -> List[str]:
    return list(state_records(blob))
