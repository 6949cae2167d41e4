"""
Contains functions to query (nested) attributes of arbitrary models by property paths like `"address.street"` or
`"items[0].name"`.
"""
import re
from typing import Any, Optional, TypeVar, overload

from typeguard import TypeCheckError, check_type

AttrT = TypeVar("AttrT")

_SEGMENT_PATTERN = re.compile(r"([^.\[\]]+)|\[(-?\d+)\]|\[([^\]]*)\]")


class _ItemKey(str):
    """Marks a path segment which has to be resolved by item access instead of attribute access"""


def split_path(attribute_path: str) -> list[str | int]:
    """
    Splits a property path into its segments. Attribute names become strings, numeric indexers become integers and
    non-numeric indexers (e.g. `["some key"]`) become keys which are looked up by item access.
    E.g.: `"items[0].name"` -> `["items", 0, "name"]`
    """
    segments: list[str | int] = []
    for match in _SEGMENT_PATTERN.finditer(attribute_path):
        attr_name, index, key = match.groups()
        if attr_name is not None:
            segments.append(attr_name)
        elif index is not None:
            segments.append(int(index))
        else:
            segments.append(_ItemKey(key.strip("\"'")))
    return segments


def join_path(segments: list[str | int]) -> str:
    """
    The inverse of `split_path`.
    """
    result = ""
    for segment in segments:
        if isinstance(segment, int):
            result += f"[{segment}]"
        elif isinstance(segment, _ItemKey):
            result += f'["{segment}"]'
        else:
            result += f".{segment}" if result else segment
    return result


def get_segment(obj: Any, segment: str | int) -> Any:
    """
    Resolves a single path segment on `obj`. Raises AttributeError if the segment doesn't exist.
    """
    if isinstance(segment, (int, _ItemKey)):
        try:
            return obj[segment]
        except (LookupError, TypeError) as error:
            raise AttributeError(f"[{segment}]: Not found") from error
    return getattr(obj, segment)


def optional_field(obj: Any, attribute_path: str, attribute_type: type[AttrT]) -> Optional[AttrT]:
    """
    Tries to query the `obj` with the provided `attribute_path`. If it is not existent or if its value doesn't match
    the `attribute_type`, `None` will be returned.
    """
    try:
        return required_field(obj, attribute_path, attribute_type)
    except (AttributeError, TypeCheckError):
        return None


@overload
def required_field(obj: Any, attribute_path: str, attribute_type: type[AttrT]) -> AttrT:
    ...


@overload
def required_field(obj: Any, attribute_path: str, attribute_type: Any) -> Any:
    ...


def required_field(obj: Any, attribute_path: str, attribute_type: Any) -> Any:
    """
    Tries to query the `obj` with the provided `attribute_path`. If it is not existent,
    an AttributeError will be raised.
    If the attribute is found, the type will be checked and a TypeCheckError will be raised if the type doesn't match
    the value.
    """
    current_obj: Any = obj
    segments = split_path(attribute_path)
    for index, segment in enumerate(segments):
        try:
            current_obj = get_segment(current_obj, segment)
        except AttributeError as error:
            raise AttributeError(f"{join_path(segments[0 : index + 1])}: Not found") from error
    try:
        check_type(current_obj, attribute_type)
    except TypeCheckError as error:
        raise TypeCheckError(f"{attribute_path}: {error}") from error
    return current_obj
