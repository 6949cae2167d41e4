"""
This package binds mutable form-state objects to validation: whenever a field changes or validation of the whole
model is requested, the matching validator runs asynchronously and the field indexed message store of the form gets
refreshed.
"""

from .errors import (
    FormValidationError,
    InvalidInput,
    ValidationEngineFailure,
    ValidatorConstructionFailed,
    ValidatorNotFound,
)
from .fields import FieldIdentifier, field_from_path
from .form_state import Event, FormState
from .options import BindingOptions
from .orchestrator import Binding, ValidationOrchestrator, add_validation
from .registry import SubclassScan, ValidatorRegistry, scan_types
from .resolver import ValidatorResolver
from .services import ServiceContainer
from .store import ValidationMessageStore
from .types import Finding, FormStateProtocol, ServiceProvider, Validator
from .validator import ModelValidator, RuleSetValidator
