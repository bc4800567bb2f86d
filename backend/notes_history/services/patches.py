"""Patch codec for revision diffs.

Text fields are diffed with diff-match-patch and stored in its patch text
format. Metadata maps are diffed shallowly, key by key, and stored as JSON:
``{"new": {key: value, ...}, "deleted": [key, ...]}``.
"""

import json
from typing import Any

from diff_match_patch import diff_match_patch

from notes_history.services.errors import UnapplyablePatchError

_dmp = diff_match_patch()


def create_text_patch(old_text: str, new_text: str) -> str:
    return _dmp.patch_toText(_dmp.patch_make(old_text or "", new_text or ""))


def apply_text_patch(text: str, patch: str) -> str:
    try:
        patches = _dmp.patch_fromText(patch or "")
    except ValueError as e:
        raise UnapplyablePatchError(f"Invalid text patch: {e}") from e

    new_text, results = _dmp.patch_apply(patches, text or "")
    if not all(results):
        failed = [i for i, ok in enumerate(results) if not ok]
        raise UnapplyablePatchError(f"Could not apply text patch (failed hunks: {failed})")
    return new_text


def same_value(a: Any, b: Any) -> bool:
    """JSON-level equality: 1, 1.0 and True are different values."""
    return json.dumps(a, sort_keys=True) == json.dumps(b, sort_keys=True)


def create_object_patch(old_object: dict[str, Any] | None, new_object: dict[str, Any]) -> str:
    old_object = old_object or {}
    output: dict[str, Any] = {"new": {}, "deleted": []}

    for key, value in new_object.items():
        if key in old_object and same_value(old_object[key], value):
            continue
        output["new"][key] = value

    for key in old_object:
        if key not in new_object:
            output["deleted"].append(key)

    return json.dumps(output)


def apply_object_patch(obj: dict[str, Any], patch: str) -> dict[str, Any]:
    """Return a patched shallow copy of ``obj``. The input is not modified."""
    try:
        data = json.loads(patch)
        new_values = data["new"]
        deleted = data["deleted"]
    except (json.JSONDecodeError, TypeError, KeyError) as e:
        raise UnapplyablePatchError(f"Invalid object patch: {e}") from e

    output = dict(obj)
    output.update(new_values)
    for key in deleted:
        output.pop(key, None)
    return output
