"""
Contains a minimal dependency-resolution container which creates validators by constructor injection.
"""
import inspect
from typing import Any, Callable, TypeVar, get_type_hints

from typeguard import TypeCheckError, check_type

from .errors import InvalidInput

ServiceT = TypeVar("ServiceT")


class ServiceContainer:
    """
    Holds services by type. `create_instance` instantiates a class and fills each constructor parameter whose
    annotation is a registered service type. Parameters which can't be resolved keep their default value; if they
    have none, a LookupError is raised.
    """

    def __init__(self):
        self._instances: dict[Any, Any] = {}
        self._factories: dict[Any, Callable[[], Any]] = {}

    def add_instance(self, service_type: type[ServiceT], instance: ServiceT) -> None:
        """Registers a singleton. The instance has to match the `service_type`."""
        if instance is None:
            raise InvalidInput("instance")
        try:
            check_type(instance, service_type)
        except TypeCheckError as error:
            raise TypeCheckError(f"Instance registered for {service_type!r}: {error}") from error
        self._instances[service_type] = instance

    def add_factory(self, service_type: type[ServiceT], factory: Callable[[], ServiceT]) -> None:
        """Registers a factory which is called every time the service is requested"""
        if factory is None:
            raise InvalidInput("factory")
        self._factories[service_type] = factory

    def has(self, service_type: Any) -> bool:
        """Returns whether the container can provide `service_type`"""
        return service_type in self._instances or service_type in self._factories

    def get(self, service_type: type[ServiceT]) -> ServiceT:
        """Returns the service registered for `service_type`"""
        if service_type in self._instances:
            return self._instances[service_type]
        if service_type in self._factories:
            return self._factories[service_type]()
        raise LookupError(f"No service registered for {service_type!r}")

    def create_instance(self, cls: type[ServiceT]) -> ServiceT:
        """Instantiates `cls`, injecting registered services into its constructor"""
        try:
            hints = get_type_hints(cls.__init__)
        except (NameError, TypeError):
            hints = {}
        kwargs: dict[str, Any] = {}
        for name, parameter in inspect.signature(cls).parameters.items():
            if parameter.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            annotation = hints.get(name, parameter.annotation)
            if self.has(annotation):
                kwargs[name] = self.get(annotation)
            elif parameter.default is inspect.Parameter.empty:
                raise LookupError(f"Unable to resolve parameter '{name}' ({annotation!r}) of {cls.__qualname__}")
        return cls(**kwargs)
