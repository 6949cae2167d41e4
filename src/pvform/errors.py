"""
Contains the exceptions raised by the form validation binding. None of them is handled inside this package: every
failure propagates to whoever triggered (or awaits) the failing operation.
"""
from typing import AbstractSet, Any, Optional


class FormValidationError(Exception):
    """
    Base class of all errors raised by this package.
    """


class InvalidInput(FormValidationError, ValueError):
    """
    A required argument was `None`.
    """

    def __init__(self, argument_name: str):
        super().__init__(f"{argument_name} must not be None")
        self.argument_name = argument_name


class ValidatorNotFound(FormValidationError, LookupError):
    """
    No validator is known for the runtime type of a model.
    """

    def __init__(self, model_type: type):
        self.model_type_name = f"{model_type.__module__}.{model_type.__qualname__}"
        super().__init__(f"Unable to locate a validator for model type {self.model_type_name}")


class ValidatorConstructionFailed(FormValidationError):
    """
    The validator class was found but instantiating it raised. The original error is chained as `__cause__`.
    """

    def __init__(self, validator_type: Any, reason: str):
        self.validator_type = validator_type
        name = getattr(validator_type, "__qualname__", repr(validator_type))
        super().__init__(f"Could not instantiate validator {name}: {reason}")


class ValidationEngineFailure(FormValidationError):
    """
    The validator itself raised while evaluating a model. The original error is chained as `__cause__`.
    """

    def __init__(self, model: Any, field_names: Optional[AbstractSet[str]], reason: str):
        self.model = model
        self.field_names = field_names
        scope = "all fields" if field_names is None else f"fields {sorted(field_names)}"
        super().__init__(f"Validation of {type(model).__qualname__} ({scope}) failed: {reason}")
