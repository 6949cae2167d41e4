"""
Contains a reference implementation of a form-state object: it holds the model being edited, tracks modified fields
and announces field changes, validation requests and validation state changes to its subscribers.
"""
import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Generic, Optional, TypeVar

from .errors import InvalidInput
from .fields import FieldIdentifier

if TYPE_CHECKING:
    from .store import ValidationMessageStore

_logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT")


class Event(Generic[PayloadT]):
    """
    A notification channel. Handlers are called synchronously in the order they subscribed. The return values of the
    handlers (e.g. tasks of scheduled validation passes) are handed back to the emitter.
    """

    def __init__(self):
        self._handlers: list[Callable[..., Any]] = []

    def subscribe(self, handler: Callable[..., Any]) -> None:
        """Adds a handler to this event"""
        if handler is None:
            raise InvalidInput("handler")
        self._handlers.append(handler)

    def emit(self, *payload: Any) -> list[Any]:
        """Calls all handlers with the payload and returns their return values"""
        return [handler(*payload) for handler in list(self._handlers)]

    def __len__(self) -> int:
        return len(self._handlers)


class FormState:
    """
    Holds the model of a form and the state around editing it. The UI layer calls `notify_field_changed` whenever the
    user edits a field and `validate` on submit. Bound validation reacts to these notifications and calls
    `notify_validation_state_changed` when the messages changed, upon which the UI re-renders.
    """

    def __init__(self, model: Any):
        if model is None:
            raise InvalidInput("model")
        self._model = model
        self._modified_fields: set[FieldIdentifier] = set()
        self._stores: list["ValidationMessageStore"] = []
        self.on_field_changed: Event[FieldIdentifier] = Event()
        self.on_validation_requested: Event[None] = Event()
        self.on_validation_state_changed: Event[None] = Event()

    @property
    def model(self) -> Any:
        """The model being edited"""
        return self._model

    def field(self, field_name: str) -> FieldIdentifier:
        """Returns the identifier of a field of the (root) model"""
        return FieldIdentifier(self._model, field_name)

    def notify_field_changed(self, field: FieldIdentifier) -> list[Any]:
        """
        Marks the field as modified and announces the change. Returns what the subscribers returned, e.g. the tasks of
        the validation passes they scheduled.
        """
        if field is None:
            raise InvalidInput("field")
        self._modified_fields.add(field)
        return self.on_field_changed.emit(field)

    def notify_validation_state_changed(self) -> None:
        """Announces that the validation messages changed"""
        self.on_validation_state_changed.emit()

    def is_modified(self, field: Optional[FieldIdentifier] = None) -> bool:
        """Returns whether the given field (or any field if none is given) got changed since the last reset"""
        if field is None:
            return len(self._modified_fields) > 0
        return field in self._modified_fields

    def mark_as_unmodified(self, field: Optional[FieldIdentifier] = None) -> None:
        """Resets the modification state of the given field, or of all fields if none is given"""
        if field is None:
            self._modified_fields.clear()
        else:
            self._modified_fields.discard(field)

    def attach_store(self, store: "ValidationMessageStore") -> None:
        """Makes the messages of `store` part of `get_validation_messages`"""
        if store is None:
            raise InvalidInput("store")
        if store not in self._stores:
            self._stores.append(store)

    def get_validation_messages(self, field: Optional[FieldIdentifier] = None) -> list[str]:
        """Returns the messages of the given field, or all messages if no field is given, from all attached stores"""
        if field is None:
            return [message for store in self._stores for message in store]
        return [message for store in self._stores for message in store.messages(field)]

    async def validate(self) -> bool:
        """
        Requests validation of the whole model, awaits all passes triggered by the request and returns True if no
        validation messages are left. Failures of the passes propagate.
        """
        pending = [result for result in self.on_validation_requested.emit() if inspect.isawaitable(result)]
        if pending:
            _logger.debug("Awaiting %i validation pass(es) of %s", len(pending), type(self._model).__qualname__)
            await asyncio.gather(*pending)
        return len(self.get_validation_messages()) == 0
