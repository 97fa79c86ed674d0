"""
Test helper functions and factory methods for the Cross-Language Validation service.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

TRIMMED_3_TO_30_REGEX = "^(?! ).{3,30}(?<! )$"
LETTERS_THEN_WORDS_REGEX = "^[^\\W\\d_][\\w ]*$"
AMOUNT_MIN = 1
AMOUNT_MAX = 5
AMOUNT_SUM_MAX = 20

STATUSES = ["NEW", "ACTIVE", "INACTIVE", "DECOMMISSIONED"]
SUB_CATEGORIES = {
    "ENDOSCOPY": ["LARYNGOSCOPE", "SINUSCOPE", "OTOSCOPE"],
    "IMAGING_SYSTEM": ["CAMERAHEAD", "LIGHTSOURCE", "VIDEOPROCESSOR"],
}

ARTICLE_PROPERTIES = [
    "id", "lastModifiedOn", "name", "number", "status", "medicalSet", "animalUse",
    "everLeftWarehouse", "maintenanceLastDate", "maintenanceNextDate",
    "maintenanceIntervalMonth", "category", "subCategory", "accessories",
]


def _is_null(prop: str) -> Dict[str, Any]:
    return {"property": prop, "operator": "EQUALS", "value": None}


def _not_null(prop: str) -> Dict[str, Any]:
    return {"property": prop, "operator": "NOT_EQUALS", "value": None}


def _equals(prop: str, value: Any) -> Dict[str, Any]:
    return {"property": prop, "operator": "EQUALS", "value": value}


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def article_rules_document() -> Dict[str, Any]:
        """Rule document for the ``article`` entity type."""
        return {
            "schemaVersion": "1.0",
            "entities": {
                "article": {
                    "properties": list(ARTICLE_PROPERTIES),
                    "groups": {"accessories": ["name", "amount"]}
                }
            },
            "mandatoryRules": {
                "article": {
                    "name": [{}],
                    "number": [{}],
                    "status": [{}],
                    "maintenanceIntervalMonth": [{"condition": _not_null("maintenanceLastDate")}],
                    "maintenanceLastDate": [{"condition": _not_null("maintenanceIntervalMonth")}],
                    "subCategory": [{"condition": _not_null("category")}],
                    "accessories[*].name": [{}],
                }
            },
            "immutableRules": {
                "article": {
                    "status": [{"condition": _equals("status", "DECOMMISSIONED")}],
                    "everLeftWarehouse": [{"condition": _equals("everLeftWarehouse", True)}],
                    "animalUse": [{
                        "condition": {"or": [
                            {"and": [_equals("animalUse", True), _equals("everLeftWarehouse", True)]},
                            {"and": [_not_null("medicalSet")]},
                        ]}
                    }],
                    "lastModifiedOn": [{}],
                }
            },
            "contentRules": {
                "article": {
                    "name": [{"constraint": {"type": "REGEX_ANY", "values": [TRIMMED_3_TO_30_REGEX]}}],
                    "status": [{
                        "constraint": {"type": "EQUALS_ANY", "values": ["NEW"]},
                        "condition": _is_null("id"),
                        "errorCodeControl": "initial"
                    }],
                    "maintenanceLastDate": [{"constraint": {"type": "DATE_PAST", "minDays": 0}}],
                    "maintenanceNextDate": [
                        {"constraint": {"type": "DATE_FUTURE", "minDays": 0, "maxDays": 3650}}
                    ],
                    "maintenanceIntervalMonth": [{"constraint": {"type": "RANGE", "min": 1, "max": 120}}],
                    "category": [
                        {"constraint": {"type": "EQUALS_ANY", "values": list(SUB_CATEGORIES) + [None]}}
                    ],
                    "subCategory": [
                        {
                            "constraint": {"type": "EQUALS_ANY", "values": values},
                            "condition": _equals("category", category)
                        }
                        for category, values in SUB_CATEGORIES.items()
                    ],
                    "accessories[*].name": [
                        {"constraint": {"type": "REGEX_ANY", "values": [LETTERS_THEN_WORDS_REGEX]}}
                    ],
                    "accessories[*].name#distinct": [{"constraint": {"type": "EQUALS_ANY", "values": [True]}}],
                    "accessories[*].amount": [
                        {"constraint": {"type": "RANGE", "min": AMOUNT_MIN, "max": AMOUNT_MAX}}
                    ],
                    "accessories[*].amount#sum": [{"constraint": {"type": "RANGE", "max": AMOUNT_SUM_MAX}}],
                    "accessories": [
                        {
                            "constraint": {"type": "SIZE", "max": 3},
                            "condition": _is_null("id"),
                            "permissions": {"type": "NONE", "values": ["MANAGER"]}
                        },
                        {
                            "constraint": {"type": "SIZE", "max": 5},
                            "permissions": ["MANAGER"]
                        },
                    ],
                }
            },
            "updateRules": {
                "article": {
                    "status": [
                        {
                            "constraint": {"type": "EQUALS_ANY", "values": ["NEW", "ACTIVE", "INACTIVE"]},
                            "condition": _equals("old.status", "NEW")
                        },
                        {
                            "constraint": {"type": "EQUALS_ANY", "values": ["ACTIVE", "INACTIVE"]},
                            "condition": {"property": "old.status", "operator": "IN",
                                          "values": ["ACTIVE", "INACTIVE"]},
                            "permissions": {"type": "NONE", "values": ["DecommissionAssets"]}
                        },
                        {
                            "constraint": {"type": "EQUALS_ANY",
                                           "values": ["ACTIVE", "INACTIVE", "DECOMMISSIONED"]},
                            "condition": {"property": "old.status", "operator": "IN",
                                          "values": ["ACTIVE", "INACTIVE"]},
                            "permissions": ["DecommissionAssets"],
                            "errorCodeControl": "decommission"
                        },
                    ],
                    "maintenanceIntervalMonth": [{
                        "constraint": {"type": "COMPARE", "operator": "GREATER_OR_EQUAL",
                                       "ref": "old.maintenanceIntervalMonth"}
                    }],
                    "accessories": [{
                        "constraint": {"type": "SIZE", "max": 3},
                        "condition": {"property": "old.accessories#size", "operator": "LESS_OR_EQUAL",
                                      "value": 3},
                        "permissions": {"type": "NONE", "values": ["MANAGER"]}
                    }],
                }
            },
            "crossPropertyRules": {
                "article": {
                    "content": [{
                        "property": "medicalSet",
                        "assert": _equals("animalUse", False),
                        "condition": _not_null("medicalSet"),
                        "errorCodeControl": "animalUse"
                    }],
                    "update": [{
                        "property": "number",
                        "assert": {"property": "number", "operator": "EQUALS", "ref": "old.number"},
                        "condition": {"property": "old.status", "operator": "NOT_EQUALS", "value": "NEW"}
                    }],
                }
            }
        }

    @staticmethod
    def create_draft_article(**overrides) -> Dict[str, Any]:
        """A valid article that has not been saved yet."""
        article = {
            "id": None,
            "name": "Laryngoscope Set",
            "number": "A-1000",
            "status": "NEW",
            "medicalSet": None,
            "animalUse": False,
            "everLeftWarehouse": False,
            "maintenanceLastDate": None,
            "maintenanceNextDate": None,
            "maintenanceIntervalMonth": None,
            "category": "ENDOSCOPY",
            "subCategory": "LARYNGOSCOPE",
            "accessories": [
                {"name": "Blade", "amount": 2},
                {"name": "Handle", "amount": 1},
            ],
        }
        article.update(overrides)
        return article

    @staticmethod
    def create_saved_article(**overrides) -> Dict[str, Any]:
        """A valid, persisted article in status ACTIVE."""
        article = TestDataFactory.create_draft_article(
            id=42,
            status="ACTIVE",
            lastModifiedOn="2024-01-01T00:00:00Z",
            maintenanceLastDate="2024-01-15",
            maintenanceIntervalMonth=6,
        )
        article.update(overrides)
        return article

    @staticmethod
    def edit(article: Dict[str, Any], **changes) -> Dict[str, Any]:
        """Deep copy of ``article`` with ``changes`` applied."""
        edited = copy.deepcopy(article)
        edited.update(changes)
        return edited

    @staticmethod
    def create_error_messages() -> Dict[str, str]:
        return {
            "error.validation.mandatory.article.name": "Please enter a name.",
            "error.validation.content.article.name": "The name must have 3 to 30 characters.",
            "error.validation.content.article.status.initial": "A new article starts in status NEW.",
            "error.validation.update.article.maintenanceIntervalMonth":
                "The maintenance interval must not be shortened.",
        }

    @staticmethod
    def write_json(path: Path, data: Any) -> str:
        """Write ``data`` as JSON to ``path`` and return the path as a string."""
        Path(path).write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    @staticmethod
    def minimal_rules_document(properties: Optional[List[str]] = None, **sections) -> Dict[str, Any]:
        """Small one-entity document; ``sections`` are rule sections for ``article``."""
        properties = properties or ["id", "name", "status", "lastModifiedOn", "accessories"]
        entity: Dict[str, Any] = {"properties": properties}
        if "accessories" in properties:
            entity["groups"] = {"accessories": ["name", "amount"]}
        document: Dict[str, Any] = {"entities": {"article": entity}}
        for section, rules in sections.items():
            document[section] = {"article": rules}
        return document
