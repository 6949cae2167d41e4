"""
Contains the ValidationMessageStore which holds the current validation messages of a form indexed by field.
"""
from typing import TYPE_CHECKING, Iterable, Iterator, Optional

from frozendict import frozendict

from .errors import InvalidInput
from .fields import FieldIdentifier

if TYPE_CHECKING:
    from .form_state import FormState


class ValidationMessageStore:
    """
    A field indexed, mutable collection of validation messages. The messages of each field keep the order in which
    they were added. A field without messages is never stored, so an empty sequence and a missing entry can't be
    told apart.
    Changes to the store are not announced by the store itself. Whoever mutates it has to signal
    "validation state changed" on the form state afterwards.
    """

    def __init__(self, form_state: Optional["FormState"] = None):
        self._messages: dict[FieldIdentifier, list[str]] = {}
        if form_state is not None:
            form_state.attach_store(self)

    def clear_all(self) -> None:
        """Removes the messages of all fields"""
        self._messages.clear()

    def clear(self, field: FieldIdentifier) -> None:
        """Removes the messages of exactly one field"""
        if field is None:
            raise InvalidInput("field")
        self._messages.pop(field, None)

    def add(self, field: FieldIdentifier, message: str) -> None:
        """Appends a message to the messages of `field`"""
        if field is None:
            raise InvalidInput("field")
        self._messages.setdefault(field, []).append(message)

    def add_range(self, field: FieldIdentifier, messages: Iterable[str]) -> None:
        """Appends all `messages` to the messages of `field`. Adding nothing doesn't create an entry."""
        if field is None:
            raise InvalidInput("field")
        messages = list(messages)
        if messages:
            self._messages.setdefault(field, []).extend(messages)

    def messages(self, field: FieldIdentifier) -> list[str]:
        """Returns a copy of the messages of `field`. The list is empty if the field has no messages."""
        return list(self._messages.get(field, ()))

    def fields(self) -> list[FieldIdentifier]:
        """Returns all fields which currently have messages"""
        return list(self._messages)

    def snapshot(self) -> frozendict[FieldIdentifier, tuple[str, ...]]:
        """Returns an immutable copy of the current store content"""
        return frozendict({field: tuple(messages) for field, messages in self._messages.items()})

    def __getitem__(self, field: FieldIdentifier) -> list[str]:
        return self.messages(field)

    def __contains__(self, field: object) -> bool:
        return field in self._messages

    def __iter__(self) -> Iterator[str]:
        for messages in self._messages.values():
            yield from messages

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self):
        return f"ValidationMessageStore({self._messages!r})"
