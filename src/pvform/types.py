"""
Contains the types used in the form validation binding
"""
from typing import (
    TYPE_CHECKING,
    AbstractSet,
    Any,
    Callable,
    Coroutine,
    Iterable,
    NamedTuple,
    Optional,
    Protocol,
    Sequence,
    TypeAlias,
    TypeVar,
    runtime_checkable,
)

if TYPE_CHECKING:
    from .fields import FieldIdentifier
    from .form_state import Event

ModelT = TypeVar("ModelT")
ModelT_contra = TypeVar("ModelT_contra", contravariant=True)


class Finding(NamedTuple):
    """
    One validation failure reported by a validator. `property_name` is the dotted path of the offending field,
    relative to the model which got validated (e.g. `"address.street"` or `"items[0].name"`).
    """

    property_name: str
    message: str


@runtime_checkable
class Validator(Protocol[ModelT_contra]):
    """
    A protocol for anything able to validate a model. If `field_names` is given, only the rules for these field
    names are evaluated.
    """

    async def validate(
        self, model: ModelT_contra, field_names: Optional[AbstractSet[str]] = None
    ) -> Sequence[Finding]:
        ...


@runtime_checkable
class ServiceProvider(Protocol):
    """
    A protocol for dependency-resolution containers. Validator classes get instantiated through it so that their
    own constructor dependencies are satisfied.
    """

    def create_instance(self, cls: type[Any]) -> Any:
        ...


class FormStateProtocol(Protocol):
    """
    The contract a form-state object has to fulfill to get bound by the `ValidationOrchestrator`.
    """

    @property
    def model(self) -> Any:
        ...

    @property
    def on_field_changed(self) -> "Event[FieldIdentifier]":
        ...

    @property
    def on_validation_requested(self) -> "Event[None]":
        ...

    def notify_validation_state_changed(self) -> None:
        ...


AsyncRuleFunction: TypeAlias = Callable[[Any], Coroutine[Any, Any, None]]
SyncRuleFunction: TypeAlias = Callable[[Any], None]
RuleFunction: TypeAlias = AsyncRuleFunction | SyncRuleFunction
ValidatorFactory: TypeAlias = Callable[[], Validator[Any]]
TypeSource: TypeAlias = Callable[[], Iterable[type]]
