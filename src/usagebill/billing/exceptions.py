"""
Billing engine exceptions.

Custom exceptions for usage aggregation and fee computation with clear error
messages. Every error carries a machine-readable code, context that makes it
attributable to a specific charge, and a recovery hint for operators.
"""

from typing import Any

from pydantic import ValidationError


class BillingError(Exception):
    """
    Base billing engine error with enhanced context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        status_code: HTTP status code for this error type
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or "billing_error"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def with_context(self, **context: Any) -> "BillingError":
        """Add context entries (ignoring ``None`` values) and return self."""
        self.context.update({key: value for key, value in context.items() if value is not None})
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


class AggregationError(BillingError):
    """Event data could not be aggregated for a billable metric."""

    def __init__(
        self,
        message: str,
        metric_code: str | None = None,
        field_name: str | None = None,
        transaction_id: str | None = None,
    ) -> None:
        context: dict[str, Any] = {}
        if metric_code:
            context["metric_code"] = metric_code
        if field_name:
            context["field_name"] = field_name
        if transaction_id:
            context["transaction_id"] = transaction_id

        super().__init__(
            message,
            "aggregation_failure",
            status_code=422,
            context=context,
            recovery_hint="Check that events send a numeric value for the metric field",
        )


class ValidationFailure(BillingError):
    """Base class for validation failures."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message,
            "validation_failure",
            status_code=422,
            context=context,
            recovery_hint=recovery_hint,
        )


class ChargeModelValidationError(ValidationFailure):
    """Charge model parameters are malformed or out of range."""

    def __init__(
        self,
        message: str,
        charge_model: str | None = None,
        validation_errors: dict[str, Any] | None = None,
    ):
        context: dict[str, Any] = {}
        if charge_model:
            context["charge_model"] = charge_model
        if validation_errors:
            context["validation_errors"] = validation_errors

        super().__init__(
            message,
            context=context,
            recovery_hint="Review the charge properties and ensure all required fields are valid",
        )


class FeeValidationError(ValidationFailure):
    """A fee record failed validation and could not be committed."""

    def __init__(self, message: str, validation_errors: dict[str, Any] | None = None) -> None:
        context: dict[str, Any] = {}
        if validation_errors:
            context["validation_errors"] = validation_errors

        super().__init__(
            message,
            context=context,
            recovery_hint="Inspect the computed amounts for the charge; no fee was committed",
        )


class BillingNotFoundError(BillingError):
    """A referenced customer, tax, metric or group does not exist."""

    def __init__(self, message: str, resource: str, resource_id: str | None = None) -> None:
        context: dict[str, Any] = {"resource": resource}
        if resource_id:
            context["resource_id"] = resource_id

        super().__init__(
            message,
            "not_found",
            status_code=404,
            context=context,
            recovery_hint=f"Verify the {resource} reference and ensure it exists",
        )


class TaxServiceError(BillingError):
    """The tax collaborator failed; always fatal for the whole fee set."""

    def __init__(self, message: str, fee_id: str | None = None, provider: str | None = None) -> None:
        context: dict[str, Any] = {}
        if fee_id:
            context["fee_id"] = fee_id
        if provider:
            context["provider"] = provider

        super().__init__(
            message,
            "tax_service_failure",
            status_code=502,
            context=context,
            recovery_hint="Retry fee computation once the tax service is available",
        )


class UnsupportedModelError(BillingError):
    """Unknown aggregation type or charge model. Configuration error, never retried."""

    def __init__(self, message: str, model_kind: str, model_type: str) -> None:
        super().__init__(
            message,
            "unsupported_model",
            status_code=500,
            context={"model_kind": model_kind, "model_type": model_type},
            recovery_hint="Fix the billable metric or charge configuration",
        )


class BillingConfigurationError(BillingError):
    """Billing configuration errors."""

    def __init__(
        self, message: str, config_key: str | None = None, recovery_hint: str | None = None
    ):
        context = {}
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message,
            "billing_config_error",
            status_code=500,
            context=context,
            recovery_hint=recovery_hint or "Check billing configuration settings",
        )


def validation_error_details(exc: ValidationError) -> dict[str, str]:
    """Flatten pydantic validation errors to ``{"field.path": "message"}``."""
    return {
        ".".join(str(part) for part in error["loc"]) or "__root__": error["msg"]
        for error in exc.errors()
    }
