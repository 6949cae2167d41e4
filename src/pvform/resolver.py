"""
Contains the ValidatorResolver which produces the validator for a given model instance.
"""
import logging
from typing import Any, Optional

from .errors import InvalidInput, ValidatorConstructionFailed, ValidatorNotFound
from .registry import SubclassScan, ValidatorRegistry
from .types import ServiceProvider, Validator, ValidatorFactory

_logger = logging.getLogger(__name__)


class ValidatorResolver:
    """
    Produces exactly one validator for a model instance. Lookup order:
    1. an explicitly supplied validator is returned as is (nothing gets looked up),
    2. the first factory registered in the `registry` for exactly the runtime type of the model,
    3. the first class found by the `fallback` scan (if any).

    Validator classes get instantiated through the `service_provider` if there is one, using their default
    constructor otherwise. Every call may return a new instance; the resolver doesn't cache anything.
    """

    def __init__(
        self,
        registry: Optional[ValidatorRegistry] = None,
        service_provider: Optional[ServiceProvider] = None,
        fallback: Optional[SubclassScan] = None,
    ):
        self.registry = registry
        self.service_provider = service_provider
        self.fallback = fallback

    def resolve(self, model: Any, validator: Optional[Validator[Any]] = None) -> Validator[Any]:
        """
        Returns `validator` if it is given, otherwise a validator for the runtime type of `model`.
        Raises ValidatorNotFound if there is none and ValidatorConstructionFailed if it couldn't be instantiated.
        """
        if model is None:
            raise InvalidInput("model")
        if validator is not None:
            return validator
        factory = self._find_factory(type(model))
        return self._instantiate(factory)

    def _find_factory(self, model_type: type) -> ValidatorFactory | type:
        if self.registry is not None:
            candidates = self.registry.candidates(model_type)
            if candidates:
                _logger.debug("Using registered validator %r for %s", candidates[0], model_type.__qualname__)
                return candidates[0]
        if self.fallback is not None:
            found_classes = self.fallback.candidates(model_type)
            if found_classes:
                if len(found_classes) > 1:
                    _logger.debug(
                        "Found %i validator classes for %s, using %s",
                        len(found_classes),
                        model_type.__qualname__,
                        found_classes[0].__qualname__,
                    )
                return found_classes[0]
        raise ValidatorNotFound(model_type)

    def _instantiate(self, factory: ValidatorFactory | type) -> Validator[Any]:
        try:
            if isinstance(factory, type) and self.service_provider is not None:
                instance = self.service_provider.create_instance(factory)
            else:
                instance = factory()
        except Exception as error:  # pylint: disable=broad-exception-caught
            raise ValidatorConstructionFailed(factory, str(error)) from error
        if not isinstance(instance, Validator):
            raise ValidatorConstructionFailed(factory, f"{type(instance).__qualname__} has no validate method")
        return instance
