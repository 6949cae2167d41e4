"""
Contains the ValidationOrchestrator which binds form-state objects to validation. Each "validation requested"
notification triggers a whole-model pass, each "field changed" notification a single-field pass. A pass resolves the
validator, awaits the validation, writes the results into the message store and signals the form state that the
validation state changed.
"""
import asyncio
import logging
from contextlib import nullcontext
from typing import AbstractSet, Any, AsyncContextManager, Coroutine, Optional

from .errors import InvalidInput, ValidationEngineFailure
from .fields import FieldIdentifier, field_from_path
from .options import DEFAULT_OPTIONS, BindingOptions
from .registry import SubclassScan, ValidatorRegistry
from .resolver import ValidatorResolver
from .store import ValidationMessageStore
from .types import Finding, FormStateProtocol, ServiceProvider, Validator

_logger = logging.getLogger(__name__)


class Binding:
    """
    The association of one form-state object with one message store and an optional explicit validator. A binding
    lives as long as its form state; there is no way to unsubscribe.

    Every triggered pass runs as an asyncio task. The task is returned to whoever triggered the pass and is tracked
    by the binding until it is done: `await binding.wait_idle()` waits until no pass is running anymore.
    """

    # pylint: disable=too-many-instance-attributes
    def __init__(
        self,
        form_state: FormStateProtocol,
        messages: ValidationMessageStore,
        resolver: ValidatorResolver,
        validator: Optional[Validator[Any]] = None,
        options: BindingOptions = DEFAULT_OPTIONS,
    ):
        self.form_state = form_state
        self.messages = messages
        self.validator = validator
        self.options = options
        self._resolver = resolver
        self._guard: AsyncContextManager[Any] = asyncio.Lock() if options.serialize_passes else nullcontext()
        self._pending: set[asyncio.Task[None]] = set()
        self._ticket = 0
        self._committed_model_ticket = 0
        self._committed_field_tickets: dict[FieldIdentifier, int] = {}

    @property
    def is_validating(self) -> bool:
        """True while at least one pass is running"""
        return len(self._pending) > 0

    def request_model_validation(self) -> "asyncio.Task[None]":
        """
        Schedules a validation pass over the whole model. Has to be called while an event loop is running.
        """
        loop = asyncio.get_running_loop()
        self._ticket += 1
        return self._schedule(loop, self._run_model_pass(self._ticket))

    def request_field_validation(self, field: FieldIdentifier) -> "asyncio.Task[None]":
        """
        Schedules a validation pass over a single field. Has to be called while an event loop is running.
        """
        if field is None:
            raise InvalidInput("field")
        loop = asyncio.get_running_loop()
        self._ticket += 1
        return self._schedule(loop, self._run_field_pass(field, self._ticket))

    async def wait_idle(self) -> None:
        """
        Waits until all passes (including passes triggered while waiting) are done. If any of the passes it waited
        for failed, the first failure is raised. Passes which were already done before don't count.
        """
        waited_for: list[asyncio.Task[None]] = []
        while self._pending:
            tasks = list(self._pending)
            waited_for.extend(tasks)
            await asyncio.wait(tasks)
        for task in waited_for:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]

    def _schedule(
        self, loop: asyncio.AbstractEventLoop, pass_coroutine: Coroutine[Any, Any, None]
    ) -> "asyncio.Task[None]":
        task = loop.create_task(pass_coroutine)
        self._pending.add(task)
        task.add_done_callback(self._on_pass_done)
        return task

    def _on_pass_done(self, task: "asyncio.Task[None]") -> None:
        self._pending.discard(task)
        if not self._pending:
            # passes triggered from now on get newer tickets than any committed one
            self._committed_field_tickets.clear()
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            _logger.error(
                "Validation pass of %s failed", type(self.form_state.model).__qualname__, exc_info=error
            )

    async def _run_model_pass(self, ticket: int) -> None:
        async with self._guard:
            model = self.form_state.model
            validator = self._resolver.resolve(model, self.validator)
            _logger.debug("Validating %s with %s", type(model).__qualname__, type(validator).__qualname__)
            findings = await _evaluate(validator, model, None)
            newer_fields: set[FieldIdentifier] = set()
            if self.options.discard_stale_results:
                if ticket < self._committed_model_ticket:
                    _logger.warning("Discarding results of a superseded validation of %s", type(model).__qualname__)
                    return
                newer_fields = {field for field, latest in self._committed_field_tickets.items() if latest > ticket}
                self._committed_model_ticket = ticket
                self._committed_field_tickets = {field: self._committed_field_tickets[field] for field in newer_fields}
            kept = {field: self.messages.messages(field) for field in newer_fields}
            self.messages.clear_all()
            for finding in findings:
                field = field_from_path(model, finding.property_name)
                if field not in newer_fields:
                    self.messages.add(field, finding.message)
            for field, messages in kept.items():
                self.messages.add_range(field, messages)
            _logger.debug("Committed %i finding(s) for %s", len(findings), type(model).__qualname__)
        self.form_state.notify_validation_state_changed()

    async def _run_field_pass(self, field: FieldIdentifier, ticket: int) -> None:
        async with self._guard:
            validator = self._resolver.resolve(self.form_state.model, self.validator)
            _logger.debug("Validating %r with %s", field, type(validator).__qualname__)
            findings = await _evaluate(validator, field.model, frozenset({field.field_name}))
            if self.options.discard_stale_results:
                if ticket < self._committed_field_tickets.get(field, 0) or ticket < self._committed_model_ticket:
                    _logger.warning("Discarding results of a superseded validation of %r", field)
                    return
                self._committed_field_tickets[field] = ticket
            self.messages.clear(field)
            self.messages.add_range(field, (finding.message for finding in findings))
        self.form_state.notify_validation_state_changed()


async def _evaluate(
    validator: Validator[Any], model: Any, field_names: Optional[AbstractSet[str]]
) -> list[Finding]:
    """
    Awaits the validator. Whatever it raises is re-raised as ValidationEngineFailure.
    """
    try:
        if field_names is None:
            return list(await validator.validate(model))
        return list(await validator.validate(model, field_names))
    except Exception as error:  # pylint: disable=broad-exception-caught
        raise ValidationEngineFailure(model, field_names, str(error)) from error


class ValidationOrchestrator:
    """
    Binds form-state objects to validation. All bindings created by one orchestrator share its resolver and options.
    If no resolver is given, validators are found by scanning the loaded ModelValidator subclasses.
    """

    def __init__(self, resolver: Optional[ValidatorResolver] = None, options: Optional[BindingOptions] = None):
        self.resolver = resolver if resolver is not None else ValidatorResolver(fallback=SubclassScan())
        self.options = options if options is not None else DEFAULT_OPTIONS

    def bind(
        self,
        form_state: FormStateProtocol,
        validator: Optional[Validator[Any]] = None,
        messages: Optional[ValidationMessageStore] = None,
    ) -> Binding:
        """
        Subscribes validation to the notifications of `form_state`. If `validator` is given, it is used for every
        pass and no validator gets looked up. If no message store is given, a new one is created and attached to the
        form state (if the form state supports attaching stores).
        """
        if form_state is None:
            raise InvalidInput("form_state")
        if messages is None:
            messages = ValidationMessageStore()
            attach_store = getattr(form_state, "attach_store", None)
            if attach_store is not None:
                attach_store(messages)
        binding = Binding(form_state, messages, self.resolver, validator, self.options)
        form_state.on_validation_requested.subscribe(binding.request_model_validation)
        form_state.on_field_changed.subscribe(binding.request_field_validation)
        _logger.debug("Bound validation to %s", type(form_state.model).__qualname__)
        return binding


def add_validation(
    form_state: FormStateProtocol,
    validator: Optional[Validator[Any]] = None,
    *,
    service_provider: Optional[ServiceProvider] = None,
    registry: Optional[ValidatorRegistry] = None,
    options: Optional[BindingOptions] = None,
) -> Binding:
    """
    Shortcut to bind `form_state` with a one-off orchestrator. Validators are looked up in the `registry` first and
    by scanning the loaded ModelValidator subclasses second; they are instantiated through the `service_provider`
    if there is one.
    """
    resolver = ValidatorResolver(registry=registry, service_provider=service_provider, fallback=SubclassScan())
    return ValidationOrchestrator(resolver, options).bind(form_state, validator)
