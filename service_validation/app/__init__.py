"""
Validation Service package for the Cross-Language Validation project.

This package evaluates a declarative rule document against entity
snapshots so that browser clients and the server reach identical verdicts.
It provides:

- app.main: API surface for rule documents, property predicates and validation phases.
- app.models: Request and response models of the API.
- app.rules: Rule document loading, condition evaluation and the validation engine.

Guidelines:
- Evaluation is pure; the only shared state is the active rule set.
- Findings are data (error codes), never exceptions, except in the explicit
  pass/fail check.
- Keep error codes stable; external message mappings are keyed by them.
"""
