"""
Contains the strategies used by the ValidatorResolver to find the validator for a model type: an explicit
registry, populated by the application at start-up, and a scan of known validator classes as fallback.
"""
import inspect
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, TypeVar

from frozendict import frozendict

from .errors import InvalidInput
from .types import TypeSource, ValidatorFactory
from .validator import ModelValidator

ValidatorClassT = TypeVar("ValidatorClassT", bound=type)


class ValidatorRegistry:
    """
    Maps model types onto validator factories. A factory is either a validator class, which gets instantiated by the
    ValidatorResolver (through the service provider, if there is one), or any callable without arguments returning
    a validator. Model types are matched exactly, subclasses of a registered model type are not covered.
    """

    def __init__(self, entries: Optional[Mapping[type, ValidatorFactory | type]] = None):
        self._entries: dict[type, list[ValidatorFactory | type]] = {}
        for model_type, factory in (entries or {}).items():
            self.register(model_type, factory)

    def register(self, model_type: type, factory: ValidatorFactory | type) -> None:
        """
        Registers a validator factory for `model_type`. If multiple factories get registered for the same type, the
        first one is used.
        """
        if model_type is None:
            raise InvalidInput("model_type")
        if factory is None:
            raise InvalidInput("factory")
        self._entries.setdefault(model_type, []).append(factory)

    def validator_for(self, model_type: type) -> Callable[[ValidatorClassT], ValidatorClassT]:
        """
        Class decorator registering the decorated validator class for `model_type`:
        ```
        @registry.validator_for(Person)
        class PersonValidator(ModelValidator[Person]):
            ...
        ```
        """

        def decorator(validator_class: ValidatorClassT) -> ValidatorClassT:
            self.register(model_type, validator_class)
            return validator_class

        return decorator

    def candidates(self, model_type: type) -> list[ValidatorFactory | type]:
        """Returns all factories registered for exactly `model_type` in registration order"""
        return list(self._entries.get(model_type, ()))

    def as_mapping(self) -> frozendict[type, tuple[ValidatorFactory | type, ...]]:
        """Returns an immutable view of all registrations"""
        return frozendict({model_type: tuple(factories) for model_type, factories in self._entries.items()})

    def __contains__(self, model_type: object) -> bool:
        return model_type in self._entries


def all_model_validator_classes() -> Iterator[type]:
    """
    Yields all currently loaded subclasses of ModelValidator (recursively). Only classes whose defining module got
    imported are known.
    """
    pending: list[type] = [ModelValidator]
    seen: set[type] = set()
    while pending:
        for subclass in pending.pop(0).__subclasses__():
            if subclass not in seen:
                seen.add(subclass)
                pending.append(subclass)
                yield subclass


class SubclassScan:
    """
    Fallback discovery strategy: scans the types provided by the `type_source` (by default all loaded ModelValidator
    subclasses) for a concrete validator class declaring exactly the model type, e.g. `ModelValidator[Person]`.
    Known limitation: if several classes match, the first one found is used and the order in which classes are found
    is not guaranteed to be stable. Prefer registering validators in a ValidatorRegistry.
    """

    def __init__(self, type_source: Optional[TypeSource] = None):
        self._type_source: TypeSource = type_source or all_model_validator_classes

    def candidates(self, model_type: type) -> list[type]:
        """Returns all concrete validator classes for exactly `model_type`"""
        return [cls for cls in self._type_source() if self._matches(cls, model_type)]

    @staticmethod
    def _matches(cls: Any, model_type: type) -> bool:
        return (
            isinstance(cls, type)
            and issubclass(cls, ModelValidator)
            and not inspect.isabstract(cls)
            and cls.declared_model_type() is model_type
        )


def scan_types(types: Iterable[type]) -> SubclassScan:
    """Returns a SubclassScan over a fixed collection of types"""
    frozen = tuple(types)
    return SubclassScan(lambda: frozen)
