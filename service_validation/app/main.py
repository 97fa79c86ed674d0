"""
Validation service for the Cross-Language Validation project.
"""

import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import Body

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import RuleSetError, RuleViolationError, ServiceError
from shared.logging import set_entity_context

from .models import (
    AllowedValuesResponse, CheckRequest, FormStateRequest, FormStateResponse, PhaseRequest,
    PropertyPredicateResponse, PropertyQueryRequest, PropertyStateResponse, RuleSetLoadResponse,
    ValidationPhase, ValidationResponse
)
from .rules import PropertyPredicateResolver, RuleSetStore, ValidationEngine


class ValidationService(BaseService):
    """Validation service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("validation", 8080, config or get_config("validation", 8080))

        self.store = RuleSetStore()
        self.error_messages: Dict[str, str] = {}

        if self.config.rules_file:
            self._load_rules_file(self.config.rules_file)
        if self.config.error_messages_file:
            self.error_messages = self._read_json(self.config.error_messages_file)

        self._setup_validation_routes()

    def _setup_validation_routes(self):
        """Set up validation-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "validation",
                "message": "Cross-Language Validation - Validation Service",
                "version": "1.0.0",
                "capabilities": ["rule_document", "property_predicates", "validation_phases"]
            }

        @self.app.get("/validation-rules")
        async def get_rules():
            """Return the active rule document."""
            return self.store.current().document

        @self.app.put("/validation-rules", response_model=RuleSetLoadResponse)
        async def put_rules(document: Dict[str, Any] = Body(...)):
            """Replace the active rule set; the old one stays active on failure."""
            try:
                rule_set = self.store.set_rules(document)
            except RuleSetError:
                self.metrics.increment_counter("rule_set_loads_total", status="error")
                raise
            self.metrics.increment_counter("rule_set_loads_total", status="ok")
            return RuleSetLoadResponse(
                schema_version=rule_set.schema_version,
                entity_types=sorted(rule_set.entities)
            )

        @self.app.get("/validation-error-messages")
        async def get_error_messages():
            """Error code to display text mapping for UI clients."""
            return self.error_messages

        @self.app.post("/validation/{entity_type}/properties/{property_key}/mandatory",
                       response_model=PropertyPredicateResponse)
        async def is_mandatory(entity_type: str, property_key: str, request: PropertyQueryRequest):
            """Whether a property is required for the given state."""
            set_entity_context(entity_type)
            resolver = PropertyPredicateResolver(self.store.current())
            return PropertyPredicateResponse(
                entity_type=entity_type,
                property=property_key,
                value=resolver.is_mandatory(entity_type, property_key, request.snapshot, request.permissions)
            )

        @self.app.post("/validation/{entity_type}/properties/{property_key}/immutable",
                       response_model=PropertyPredicateResponse)
        async def is_immutable(entity_type: str, property_key: str, request: PropertyQueryRequest):
            """Whether a property is locked for the given saved state."""
            set_entity_context(entity_type)
            resolver = PropertyPredicateResolver(self.store.current())
            return PropertyPredicateResponse(
                entity_type=entity_type,
                property=property_key,
                value=resolver.is_immutable(entity_type, property_key, request.snapshot, request.permissions)
            )

        @self.app.post("/validation/{entity_type}/properties/{property_key}/allowed-values",
                       response_model=AllowedValuesResponse)
        async def allowed_values(entity_type: str, property_key: str, request: PropertyQueryRequest):
            """Values a property may take, or null when unconstrained."""
            set_entity_context(entity_type)
            resolver = PropertyPredicateResolver(self.store.current())
            return AllowedValuesResponse(
                entity_type=entity_type,
                property=property_key,
                allowed_values=resolver.allowed_values(
                    entity_type, property_key, request.snapshot, request.permissions
                )
            )

        @self.app.post("/validation/{entity_type}/form-state", response_model=FormStateResponse)
        async def form_state(entity_type: str, request: FormStateRequest):
            """Mandatory, immutable and allowed values for every ruled property."""
            set_entity_context(entity_type)
            resolver = PropertyPredicateResolver(self.store.current())
            states = resolver.form_state(
                entity_type, request.edited, request.saved, request.permissions, request.properties
            )
            return FormStateResponse(
                entity_type=entity_type,
                properties={
                    key: PropertyStateResponse(
                        mandatory=state.mandatory,
                        immutable=state.immutable,
                        allowed_values=state.allowed_values
                    )
                    for key, state in states.items()
                }
            )

        @self.app.post("/validation/{entity_type}/check", response_model=ValidationResponse)
        async def check(entity_type: str, request: CheckRequest):
            """Pass/fail check before persisting; 400 with the error codes on failure."""
            set_entity_context(entity_type)
            engine = ValidationEngine(self.store.current())
            phase = "create" if request.saved is None else "all"
            start_time = time.time()
            try:
                engine.require_validation_rules_pass(
                    entity_type, request.entity, request.permissions, request.saved, request.today
                )
            except RuleViolationError as e:
                self.metrics.record_validation(phase, len(e.errors), time.time() - start_time)
                raise
            self.metrics.record_validation(phase, 0, time.time() - start_time)
            return ValidationResponse(entity_type=entity_type, phase=phase, valid=True, errors=[])

        @self.app.post("/validation/{entity_type}/{phase}", response_model=ValidationResponse)
        async def validate(entity_type: str, phase: ValidationPhase, request: PhaseRequest):
            """Run one validation phase, or the create/all combinations."""
            set_entity_context(entity_type)
            engine = ValidationEngine(self.store.current())
            run = self._phase_runner(engine, phase)

            start_time = time.time()
            errors = run(entity_type, request)
            self.metrics.record_validation(phase.value, len(errors), time.time() - start_time)

            if errors:
                self.logger.info(
                    "Validation findings",
                    entity_type=entity_type,
                    phase=phase.value,
                    errors=errors
                )
            return ValidationResponse(
                entity_type=entity_type,
                phase=phase.value,
                valid=not errors,
                errors=errors
            )

    @staticmethod
    def _phase_runner(engine: ValidationEngine, phase: ValidationPhase) -> Callable[[str, PhaseRequest], List[str]]:
        runners = {
            ValidationPhase.MANDATORY:
                lambda t, r: engine.validate_mandatory(t, r.new, r.permissions),
            ValidationPhase.CONTENT:
                lambda t, r: engine.validate_content(t, r.new, r.permissions, r.today),
            ValidationPhase.IMMUTABLE:
                lambda t, r: engine.validate_immutable(t, r.old, r.new, r.permissions),
            ValidationPhase.UPDATE:
                lambda t, r: engine.validate_update(t, r.old, r.new, r.permissions, r.today),
            ValidationPhase.CREATE:
                lambda t, r: engine.validate_create(t, r.new, r.permissions, r.today),
            ValidationPhase.ALL:
                lambda t, r: engine.validate_all(t, r.old, r.new, r.permissions, r.today),
        }
        return runners[phase]

    def _health_details(self) -> Dict[str, Any]:
        rule_set = self.store.current()
        return {"rules": {"schema_version": rule_set.schema_version,
                          "entity_types": sorted(rule_set.entities)}}

    def _load_rules_file(self, path: str):
        document = self._read_json(path)
        try:
            self.store.set_rules(document)
        except RuleSetError:
            self.metrics.increment_counter("rule_set_loads_total", status="error")
            raise
        self.metrics.increment_counter("rule_set_loads_total", status="ok")

    def _read_json(self, path: str) -> Dict[str, Any]:
        try:
            with Path(path).open(encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError) as e:
            self.logger.error("Failed to read JSON file", path=path, error=str(e))
            raise ServiceError(f"Cannot read {path}", {"path": path, "error": str(e)})


def create_app(config: Optional[ServiceConfig] = None):
    """Create validation service application."""
    service = ValidationService(config)
    return service.app


if __name__ == "__main__":
    service = ValidationService()
    service.run()
