import asyncio
import logging
from dataclasses import dataclass
from typing import AbstractSet, Any, Callable, Optional, Sequence

import pytest

from pvform import (
    Binding,
    BindingOptions,
    FieldIdentifier,
    Finding,
    FormState,
    InvalidInput,
    RuleSetValidator,
    SubclassScan,
    ValidationEngineFailure,
    ValidationMessageStore,
    ValidationOrchestrator,
    ValidatorNotFound,
    ValidatorRegistry,
    ValidatorResolver,
    add_validation,
    scan_types,
)


@dataclass
class Applicant:
    name: str
    age: int


@dataclass
class Unvalidated:
    value: int


def name_required(value: str) -> None:
    if not value:
        raise ValueError("Name required")


def adult(value: int) -> None:
    if value < 18:
        raise ValueError("Age must be >= 18")


class ApplicantValidator(RuleSetValidator[Applicant]):
    def __init__(self):
        super().__init__({"name": name_required, "age": adult})


class ManualValidator:
    """
    Validates like the ApplicantValidator (based on the model state at call time) but every call waits until the
    test releases it.
    """

    def __init__(self, fail_calls: AbstractSet[int] = frozenset()):
        self.releases: list[asyncio.Event] = []
        self.field_names: list[Optional[AbstractSet[str]]] = []
        self._fail_calls = fail_calls
        self._inner = ApplicantValidator()

    async def validate(self, model: Any, field_names: Optional[AbstractSet[str]] = None) -> Sequence[Finding]:
        findings = await self._inner.validate(model, field_names)
        call = len(self.releases)
        release = asyncio.Event()
        self.releases.append(release)
        self.field_names.append(field_names)
        await release.wait()
        if call in self._fail_calls:
            raise RuntimeError(f"call {call} crashed")
        return findings


class FailingValidator:
    async def validate(self, model: Any, field_names: Optional[AbstractSet[str]] = None) -> Sequence[Finding]:
        raise RuntimeError("rule engine crashed")


class FlakyValidator:
    """Fails on the first call and validates like the ApplicantValidator afterwards"""

    def __init__(self):
        self.calls = 0

    async def validate(self, model: Any, field_names: Optional[AbstractSet[str]] = None) -> Sequence[Finding]:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("temporarily unavailable")
        return await ApplicantValidator().validate(model, field_names)


@dataclass
class Residence:
    street: str


@dataclass
class Tenant:
    name: str
    residence: Residence


def street_required(value: str) -> None:
    if not value:
        raise ValueError("Street required")


async def _until(predicate: Callable[[], bool]) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("Condition was not reached")


def _registry_orchestrator(options: Optional[BindingOptions] = None) -> ValidationOrchestrator:
    resolver = ValidatorResolver(registry=ValidatorRegistry({Applicant: ApplicantValidator}))
    return ValidationOrchestrator(resolver, options)


class TestBind:
    def test_none_form_state_is_rejected(self):
        with pytest.raises(InvalidInput):
            ValidationOrchestrator().bind(None)  # type: ignore[arg-type]

    def test_bind_subscribes_and_attaches_store(self):
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator().bind(form)
        assert isinstance(binding, Binding)
        assert len(form.on_field_changed) == 1
        assert len(form.on_validation_requested) == 1
        binding.messages.add(form.field("name"), "from the store")
        assert form.get_validation_messages() == ["from the store"]

    def test_bind_uses_given_store(self):
        form = FormState(Applicant("", 17))
        store = ValidationMessageStore()
        assert _registry_orchestrator().bind(form, messages=store).messages is store

    def test_requesting_field_validation_without_field_is_rejected(self):
        binding = _registry_orchestrator().bind(FormState(Applicant("", 17)))
        with pytest.raises(InvalidInput):
            binding.request_field_validation(None)  # type: ignore[arg-type]

    def test_requesting_validation_outside_an_event_loop_schedules_nothing(self):
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator(BindingOptions(discard_stale_results=True)).bind(form)
        with pytest.raises(RuntimeError):
            binding.request_model_validation()
        with pytest.raises(RuntimeError):
            binding.request_field_validation(form.field("age"))
        assert binding._ticket == 0  # pylint: disable=protected-access
        assert not binding.is_validating


class TestModelPass:
    async def test_store_contains_exactly_the_findings(self):
        applicant = Applicant("", 17)
        form = FormState(applicant)
        binding = _registry_orchestrator().bind(form)
        stale = FieldIdentifier(applicant, "nickname")
        binding.messages.add(stale, "left over")

        assert not await form.validate()

        assert binding.messages.snapshot() == {
            FieldIdentifier(applicant, "name"): ("Name required",),
            FieldIdentifier(applicant, "age"): ("Age must be >= 18",),
        }

    async def test_valid_model(self):
        form = FormState(Applicant("Jane", 30))
        binding = _registry_orchestrator().bind(form)
        assert await form.validate()
        assert len(binding.messages) == 0

    async def test_is_idempotent(self):
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator().bind(form)
        await form.validate()
        first = binding.messages.snapshot()
        await form.validate()
        assert binding.messages.snapshot() == first

    async def test_validation_state_change_is_signalled_after_commit(self):
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator().bind(form)
        seen: list[int] = []
        form.on_validation_state_changed.subscribe(lambda: seen.append(len(binding.messages)))
        await form.validate()
        assert seen == [2]

    async def test_whole_model_is_validated(self):
        validator = ManualValidator()
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator().bind(form, validator)
        task = form.on_validation_requested.emit()[0]
        await _until(lambda: len(validator.releases) == 1)
        assert binding.is_validating
        validator.releases[0].set()
        await task
        assert validator.field_names == [None]
        assert not binding.is_validating


class TestFieldPass:
    async def test_only_the_changed_field_is_replaced(self):
        applicant = Applicant("", 17)
        form = FormState(applicant)
        binding = _registry_orchestrator().bind(form)
        await form.validate()
        unrelated = FieldIdentifier(applicant, "nickname")
        binding.messages.add(unrelated, "kept")

        applicant.name = "Jane"
        await asyncio.gather(*form.notify_field_changed(form.field("name")))

        assert binding.messages.snapshot() == {
            FieldIdentifier(applicant, "age"): ("Age must be >= 18",),
            unrelated: ("kept",),
        }

    async def test_field_pass_is_restricted_to_the_field(self):
        validator = ManualValidator()
        form = FormState(Applicant("", 17))
        _registry_orchestrator().bind(form, validator)
        task = form.notify_field_changed(form.field("age"))[0]
        await _until(lambda: len(validator.releases) == 1)
        validator.releases[0].set()
        await task
        assert validator.field_names == [frozenset({"age"})]

    async def test_field_pass_adds_new_messages(self):
        applicant = Applicant("Jane", 30)
        form = FormState(applicant)
        binding = _registry_orchestrator().bind(form)
        applicant.age = 12
        await asyncio.gather(*form.notify_field_changed(form.field("age")))
        assert binding.messages.messages(form.field("age")) == ["Age must be >= 18"]
        assert form.field("name") not in binding.messages

    async def test_scenario(self):
        applicant = Applicant("", 17)
        form = FormState(applicant)
        binding = _registry_orchestrator().bind(form)

        await form.validate()
        assert binding.messages.snapshot() == {
            form.field("name"): ("Name required",),
            form.field("age"): ("Age must be >= 18",),
        }

        applicant.age = 21
        form.notify_field_changed(form.field("age"))
        await binding.wait_idle()
        assert binding.messages.snapshot() == {form.field("name"): ("Name required",)}

    async def test_nested_field_of_untyped_validators_keeps_its_error(self):
        tenant = Tenant("", Residence(""))
        form = FormState(tenant)
        residence_validator = RuleSetValidator({"street": street_required})
        validator = RuleSetValidator({"name": name_required}, children={"residence": residence_validator})
        binding = ValidationOrchestrator(ValidatorResolver()).bind(form, validator)
        street = FieldIdentifier(tenant.residence, "street")

        await form.validate()
        assert binding.messages.messages(street) == ["Street required"]

        await asyncio.gather(*form.notify_field_changed(street))
        assert binding.messages.messages(street) == ["Street required"]

        tenant.residence.street = "Main Street"
        await asyncio.gather(*form.notify_field_changed(street))
        assert binding.messages.snapshot() == {form.field("name"): ("Name required",)}


class TestValidatorSelection:
    async def test_explicit_validator_bypasses_discovery(self):
        def fail_on_scan():
            raise AssertionError("must not scan")

        resolver = ValidatorResolver(fallback=SubclassScan(fail_on_scan))
        form = FormState(Unvalidated(1))

        class OneFinding:
            async def validate(self, model, field_names=None):
                return [Finding("value", "explicit")]

        binding = ValidationOrchestrator(resolver).bind(form, OneFinding())
        assert not await form.validate()
        assert binding.messages.messages(form.field("value")) == ["explicit"]

    async def test_explicit_validator_wins_over_multiple_candidates(self):
        class SecondApplicantValidator(ApplicantValidator):
            pass

        scan = scan_types([ApplicantValidator, SecondApplicantValidator])
        form = FormState(Applicant("", 17))

        class NothingToReport:
            async def validate(self, model, field_names=None):
                return []

        ValidationOrchestrator(ValidatorResolver(fallback=scan)).bind(form, NothingToReport())
        assert await form.validate()

    async def test_default_orchestrator_scans_subclasses(self):
        form = FormState(Applicant("", 17))
        ValidationOrchestrator().bind(form)
        assert sorted(await _validate_and_collect(form)) == ["Age must be >= 18", "Name required"]

    async def test_add_validation_uses_registry_and_service_provider(self):
        form = FormState(Applicant("", 17))

        class NameOnlyValidator(RuleSetValidator[Applicant]):
            def __init__(self):
                super().__init__({"name": name_required})

        binding = add_validation(form, registry=ValidatorRegistry({Applicant: NameOnlyValidator}))
        assert binding.form_state is form
        assert not await form.validate()
        assert form.get_validation_messages() == ["Name required"]


async def _validate_and_collect(form: FormState) -> list[str]:
    await form.validate()
    return form.get_validation_messages()


class TestFailures:
    async def test_validator_not_found_leaves_store_untouched(self):
        model = Unvalidated(1)
        form = FormState(model)
        binding = ValidationOrchestrator(ValidatorResolver(registry=ValidatorRegistry())).bind(form)
        binding.messages.add(form.field("value"), "previous")
        notifications = []
        form.on_validation_state_changed.subscribe(lambda: notifications.append(True))

        with pytest.raises(ValidatorNotFound):
            await form.validate()
        with pytest.raises(ValidatorNotFound):
            await form.notify_field_changed(form.field("value"))[0]

        assert binding.messages.snapshot() == {form.field("value"): ("previous",)}
        assert notifications == []

    async def test_engine_failure_is_surfaced_and_store_kept(self, caplog):
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator().bind(form, FailingValidator())
        binding.messages.add(form.field("name"), "previous")

        with caplog.at_level(logging.ERROR, logger="pvform.orchestrator"):
            with pytest.raises(ValidationEngineFailure) as error_info:
                await form.validate()

        assert isinstance(error_info.value.__cause__, RuntimeError)
        assert error_info.value.field_names is None
        assert binding.messages.snapshot() == {form.field("name"): ("previous",)}
        assert "Validation pass of Applicant failed" in caplog.text

    async def test_wait_idle_raises_first_failure_once(self):
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator().bind(form, FailingValidator())
        form.notify_field_changed(form.field("age"))
        with pytest.raises(ValidationEngineFailure) as error_info:
            await binding.wait_idle()
        assert error_info.value.field_names == frozenset({"age"})
        await binding.wait_idle()

    async def test_wait_idle_ignores_failures_of_earlier_passes(self):
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator().bind(form, FlakyValidator())
        with pytest.raises(ValidationEngineFailure):
            await form.validate()

        form.notify_field_changed(form.field("age"))
        await binding.wait_idle()
        assert binding.messages.snapshot() == {form.field("age"): ("Age must be >= 18",)}


class TestConcurrentPasses:
    async def _start_model_then_field_pass(self, options: BindingOptions):
        """
        Starts a whole-model pass while the applicant is too young, then fixes the age and starts a field pass.
        """
        validator = ManualValidator()
        applicant = Applicant("", 17)
        form = FormState(applicant)
        binding = _registry_orchestrator(options).bind(form, validator)
        form.on_validation_requested.emit()
        await _until(lambda: len(validator.releases) == 1)
        applicant.age = 21
        form.notify_field_changed(form.field("age"))
        return validator, form, binding

    async def test_disjoint_scopes_do_not_interfere(self):
        validator = ManualValidator()
        applicant = Applicant("", 17)
        form = FormState(applicant)
        binding = _registry_orchestrator().bind(form, validator)
        form.notify_field_changed(form.field("name"))
        form.notify_field_changed(form.field("age"))
        await _until(lambda: len(validator.releases) == 2)
        validator.releases[1].set()
        validator.releases[0].set()
        await binding.wait_idle()
        assert binding.messages.snapshot() == {
            form.field("name"): ("Name required",),
            form.field("age"): ("Age must be >= 18",),
        }

    async def test_last_writer_wins_by_default(self):
        validator, form, binding = await self._start_model_then_field_pass(BindingOptions())
        await _until(lambda: len(validator.releases) == 2)
        validator.releases[1].set()
        await _until(lambda: len(binding._pending) == 1)  # pylint: disable=protected-access
        validator.releases[0].set()
        await binding.wait_idle()
        # the slower whole-model pass reports the age error although the age got fixed in the meantime
        assert binding.messages.snapshot() == {
            form.field("name"): ("Name required",),
            form.field("age"): ("Age must be >= 18",),
        }

    async def test_stale_results_can_be_discarded(self):
        validator, form, binding = await self._start_model_then_field_pass(BindingOptions(discard_stale_results=True))
        await _until(lambda: len(validator.releases) == 2)
        validator.releases[1].set()
        await _until(lambda: len(binding._pending) == 1)  # pylint: disable=protected-access
        validator.releases[0].set()
        await binding.wait_idle()
        assert binding.messages.snapshot() == {form.field("name"): ("Name required",)}

    async def test_superseded_model_pass_is_discarded(self):
        validator = ManualValidator()
        applicant = Applicant("", 17)
        form = FormState(applicant)
        binding = _registry_orchestrator(BindingOptions(discard_stale_results=True)).bind(form, validator)
        form.on_validation_requested.emit()
        await _until(lambda: len(validator.releases) == 1)
        applicant.name = "Jane"
        form.on_validation_requested.emit()
        await _until(lambda: len(validator.releases) == 2)
        validator.releases[1].set()
        await _until(lambda: len(binding._pending) == 1)  # pylint: disable=protected-access
        validator.releases[0].set()
        await binding.wait_idle()
        assert binding.messages.snapshot() == {form.field("age"): ("Age must be >= 18",)}

    async def test_serialized_passes_run_in_trigger_order(self):
        validator, form, binding = await self._start_model_then_field_pass(BindingOptions(serialize_passes=True))
        for _ in range(10):
            await asyncio.sleep(0)
        assert len(validator.releases) == 1
        validator.releases[0].set()
        await _until(lambda: len(validator.releases) == 2)
        assert form.get_validation_messages(form.field("age")) == ["Age must be >= 18"]
        validator.releases[1].set()
        await binding.wait_idle()
        assert binding.messages.snapshot() == {form.field("name"): ("Name required",)}

    async def test_failed_model_pass_does_not_supersede_field_pass(self):
        validator = ManualValidator(fail_calls={1})
        applicant = Applicant("Jane", 30)
        form = FormState(applicant)
        binding = _registry_orchestrator(BindingOptions(discard_stale_results=True)).bind(form, validator)
        binding.messages.add(form.field("age"), "outdated")
        applicant.age = 12
        field_task = form.notify_field_changed(form.field("age"))[0]
        await _until(lambda: len(validator.releases) == 1)
        model_task = form.on_validation_requested.emit()[0]
        await _until(lambda: len(validator.releases) == 2)

        validator.releases[0].set()
        await field_task
        validator.releases[1].set()
        with pytest.raises(ValidationEngineFailure):
            await model_task

        assert binding.messages.snapshot() == {form.field("age"): ("Age must be >= 18",)}

    async def test_failed_model_pass_does_not_supersede_older_model_pass(self):
        validator = ManualValidator(fail_calls={1})
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator(BindingOptions(discard_stale_results=True)).bind(form, validator)
        first = form.on_validation_requested.emit()[0]
        await _until(lambda: len(validator.releases) == 1)
        second = form.on_validation_requested.emit()[0]
        await _until(lambda: len(validator.releases) == 2)

        validator.releases[1].set()
        with pytest.raises(ValidationEngineFailure):
            await second
        validator.releases[0].set()
        await first

        assert binding.messages.snapshot() == {
            form.field("name"): ("Name required",),
            form.field("age"): ("Age must be >= 18",),
        }

    async def test_ticket_bookkeeping_is_dropped_when_idle(self):
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator(BindingOptions(discard_stale_results=True)).bind(form)
        for _ in range(3):
            form.notify_field_changed(form.field("name"))
            form.notify_field_changed(form.field("age"))
        await binding.wait_idle()
        assert binding._committed_field_tickets == {}  # pylint: disable=protected-access
        assert len(binding.messages) == 2

    async def test_no_ticket_bookkeeping_without_discarding(self):
        validator = ManualValidator()
        form = FormState(Applicant("", 17))
        binding = _registry_orchestrator().bind(form, validator)
        form.notify_field_changed(form.field("name"))
        form.notify_field_changed(form.field("age"))
        await _until(lambda: len(validator.releases) == 2)
        validator.releases[0].set()
        await _until(lambda: len(binding._pending) == 1)  # pylint: disable=protected-access
        assert binding._committed_field_tickets == {}  # pylint: disable=protected-access
        validator.releases[1].set()
        await binding.wait_idle()
