"""
Contains the base class for validators of a specific model type and an adapter turning plain rule functions into
such a validator.
"""
import inspect
import logging
from abc import ABC, abstractmethod
from typing import AbstractSet, Any, Generic, Iterable, Mapping, Optional, Sequence, get_args, get_origin

from .errors import InvalidInput
from .types import Finding, ModelT, RuleFunction
from .utils.query_object import required_field, split_path

_logger = logging.getLogger(__name__)


class ModelValidator(ABC, Generic[ModelT]):
    """
    Base class of validators for exactly one model type. The generic argument declares which type that is:
    ```
    class PersonValidator(ModelValidator[Person]):
        async def validate(self, model, field_names=None):
            ...
    ```
    """

    @abstractmethod
    async def validate(self, model: ModelT, field_names: Optional[AbstractSet[str]] = None) -> Sequence[Finding]:
        """
        Validates the model. If `field_names` is given, only the rules for these fields are evaluated.
        """

    @classmethod
    def declared_model_type(cls) -> Optional[type]:
        """
        Returns the model type this validator class declares through its generic argument or None if it declares
        none (e.g. because it is generic itself).
        """
        for klass in cls.__mro__:
            for base in klass.__dict__.get("__orig_bases__", ()):
                origin = get_origin(base)
                if not (isinstance(origin, type) and issubclass(origin, ModelValidator)):
                    continue
                args = get_args(base)
                if len(args) > 0 and isinstance(args[0], type):
                    return args[0]
        return None


class RuleSetValidator(ModelValidator[ModelT]):
    """
    A validator built from plain rule functions. A rule gets the value of its field (and optionally the model as
    second argument) and raises a ValueError with the message to report if the value is invalid. Rules may be sync
    or async. Any other exception raised by a rule propagates.
    Sub-models are validated by child validators; their findings are reported with the path of the sub-model as
    prefix. If a child holds a list or tuple, each item is validated.
    """

    def __init__(
        self,
        rules: Optional[Mapping[str, RuleFunction | Iterable[RuleFunction]]] = None,
        children: Optional[Mapping[str, ModelValidator[Any]]] = None,
        model_type: Optional[type] = None,
    ):
        self._rules: dict[str, list[RuleFunction]] = {}
        self._children: dict[str, ModelValidator[Any]] = {}
        self._model_type = model_type or self.declared_model_type()
        for property_name, rule_or_rules in (rules or {}).items():
            if callable(rule_or_rules):
                self.rule_for(property_name, rule_or_rules)
            else:
                for rule in rule_or_rules:
                    self.rule_for(property_name, rule)
        for property_name, child_validator in (children or {}).items():
            self.child(property_name, child_validator)

    @property
    def model_type(self) -> Optional[type]:
        """The type of models validated by this validator"""
        return self._model_type

    def rule_for(self, property_name: str, rule: RuleFunction) -> "RuleSetValidator[ModelT]":
        """Adds a rule for the given property"""
        if rule is None:
            raise InvalidInput("rule")
        self._rules.setdefault(property_name, []).append(rule)
        return self

    def child(self, property_name: str, validator: ModelValidator[Any]) -> "RuleSetValidator[ModelT]":
        """Validates the sub-model(s) under `property_name` with `validator`"""
        if validator is None:
            raise InvalidInput("validator")
        self._children[property_name] = validator
        return self

    async def validate(self, model: ModelT, field_names: Optional[AbstractSet[str]] = None) -> Sequence[Finding]:
        responsible = self._find_responsible(model, field_names)
        if responsible is None:
            if self._model_type is not None or not _has_fields(model, field_names):
                raise LookupError(
                    f"No validator is responsible for {type(model).__qualname__}"
                    + ("" if field_names is None else f" (fields {sorted(field_names)})")
                )
            responsible = self
        if responsible is not self:
            return await responsible.validate(model, field_names)
        findings: list[Finding] = []
        for property_name, rules in self._rules.items():
            if field_names is not None and property_name not in field_names:
                continue
            value = required_field(model, property_name, Any)
            for rule in rules:
                message = await self._execute_rule(rule, value, model)
                if message is not None:
                    findings.append(Finding(property_name, message))
        for property_name, validator in self._children.items():
            if field_names is not None and property_name not in field_names:
                continue
            findings.extend(await self._validate_child(model, property_name, validator))
        return findings

    def _covers(self, field_names: AbstractSet[str]) -> bool:
        return all(name in self._rules or name in self._children for name in field_names)

    def _find_responsible(
        self, model: Any, field_names: Optional[AbstractSet[str]]
    ) -> Optional[ModelValidator[Any]]:
        """
        A field of a nested model gets validated against the nested model itself. In this case the child validator
        responsible for that model takes over. Without a model type, a validator is responsible if it has rules for
        all of the `field_names`.
        """
        if self._model_type is not None:
            if type(model) is self._model_type:
                return self
        elif field_names is None or self._covers(field_names):
            return self
        for validator in self._children.values():
            if isinstance(validator, RuleSetValidator):
                if validator._find_responsible(model, field_names) is not None:
                    return validator
            elif type(model) is validator.declared_model_type():
                return validator
        return None

    @staticmethod
    async def _validate_child(model: Any, property_name: str, validator: ModelValidator[Any]) -> list[Finding]:
        sub_model = required_field(model, property_name, Any)
        if sub_model is None:
            return []
        if isinstance(sub_model, (list, tuple)):
            sub_models = [(f"{property_name}[{index}]", item) for index, item in enumerate(sub_model)]
        else:
            sub_models = [(property_name, sub_model)]
        findings: list[Finding] = []
        for prefix, item in sub_models:
            if item is None:
                continue
            for finding in await validator.validate(item):
                findings.append(Finding(f"{prefix}.{finding.property_name}", finding.message))
        return findings

    @staticmethod
    async def _execute_rule(rule: RuleFunction, value: Any, model: Any) -> Optional[str]:
        """
        Executes a sync or async rule and returns the message of the ValueError it raised, if any.
        """
        args = (value, model) if len(inspect.signature(rule).parameters) >= 2 else (value,)
        try:
            result = rule(*args)  # type: ignore[call-arg]
            if inspect.isawaitable(result):
                await result
        except ValueError as error:
            _logger.debug("Rule %s failed: %s", getattr(rule, "__name__", rule), error)
            return str(error)
        return None


def _has_fields(model: Any, field_names: Optional[AbstractSet[str]]) -> bool:
    if field_names is None:
        return True
    return all(hasattr(model, str(split_path(name)[0])) for name in field_names if name)
