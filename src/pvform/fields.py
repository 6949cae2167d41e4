"""
Contains the FieldIdentifier which addresses a single field of a (possibly nested) model.
"""
from typing import Any

from .errors import InvalidInput
from .utils.query_object import get_segment, join_path, split_path


class FieldIdentifier:
    """
    Identifies a single field of a model by the pair (model, field name). Models are compared by identity,
    not by equality: two identifiers are equal iff they refer to the very same model object and the same field name.
    This way models don't have to be hashable.
    """

    __slots__ = ("_model", "_field_name")

    def __init__(self, model: Any, field_name: str):
        if model is None:
            raise InvalidInput("model")
        if field_name is None:
            raise InvalidInput("field_name")
        self._model = model
        self._field_name = field_name

    @property
    def model(self) -> Any:
        """The object owning the field"""
        return self._model

    @property
    def field_name(self) -> str:
        """The name of the field inside its owning model"""
        return self._field_name

    def __eq__(self, other):
        return (
            isinstance(other, FieldIdentifier)
            and self._model is other._model
            and self._field_name == other._field_name
        )

    def __hash__(self):
        return hash((id(self._model), self._field_name))

    def __repr__(self):
        return f"FieldIdentifier({type(self._model).__qualname__}@{id(self._model):#x}, {self._field_name!r})"


def field_from_path(model: Any, property_path: str) -> FieldIdentifier:
    """
    Maps a property path relative to `model` (as reported by validators, e.g. `"address.street"`) onto the field
    identifier of its owning model, i.e. `FieldIdentifier(model.address, "street")`. This way a whole-model
    validation and a validation of a single nested field address the same store entry.
    If the path can't be walked (a missing attribute or a `None` in between), the identifier falls back to
    `FieldIdentifier(model, property_path)`.
    """
    segments = split_path(property_path)
    if len(segments) <= 1:
        return FieldIdentifier(model, property_path)
    owner: Any = model
    for segment in segments[:-1]:
        try:
            owner = get_segment(owner, segment)
        except AttributeError:
            return FieldIdentifier(model, property_path)
        if owner is None:
            return FieldIdentifier(model, property_path)
    return FieldIdentifier(owner, join_path(segments[-1:]))
