from typing import Any

import pytest

from consultnote.internal_core.contracts import TopicConfig


def _uti_topic_payload() -> dict[str, Any]:
    return {
        "metadata": {
            "id": "uti",
            "display_name": "Urinary tract infection",
            "slug": "uti",
            "specialty": "general-practice",
            "triggers": ["dysuria", "frequency"],
        },
        "snippets": [
            {
                "id": "uti-hx",
                "trigger": "utihx",
                "label": "UTI history",
                "content": "Dysuria for [duration]. Fever: {yes|no*}. Review @date(+7d).",
            }
        ],
        "reasoning": {
            "discriminators": ["Loin pain suggests upper tract involvement"],
            "must_not_miss": ["Pyelonephritis"],
            "red_flags": ["Loin pain", "Rigors", "Vomiting"],
        },
        "structured_fields": [
            {
                "id": "history",
                "title": "History",
                "fields": [
                    {"id": "duration", "label": "Duration", "type": "text"},
                    {"id": "dysuria", "label": "Dysuria", "type": "toggle"},
                    {"id": "fever", "label": "Fever", "type": "toggle"},
                    {
                        "id": "temperature",
                        "label": "Temperature",
                        "type": "number",
                        "show_if": "fever == true",
                    },
                    {
                        "id": "symptoms",
                        "label": "Symptoms",
                        "type": "multi",
                        "options": ["frequency", "urgency", "haematuria"],
                    },
                ],
            },
            {
                "id": "exam",
                "title": "Examination",
                "fields": [{"id": "abdo", "label": "Abdomen", "type": "text"}],
            },
            {
                "id": "plan",
                "title": "Plan",
                "fields": [
                    {
                        "id": "antibiotic",
                        "label": "Antibiotic",
                        "type": "select",
                        "options": ["nitrofurantoin", "trimethoprim"],
                    }
                ],
            },
            {
                "id": "safety-net",
                "title": "Safety net",
                "fields": [{"id": "return_advice", "label": "Return advice", "type": "text"}],
            },
        ],
        "output_template": {
            "sections": [
                {
                    "id": "history",
                    "title": "History",
                    "source": "structured",
                    "structured_section_id": "history",
                },
                {"id": "ddx", "title": "Differentials", "source": "ddx"},
                {"id": "reasoning", "title": "Reasoning", "source": "reasoning"},
                {
                    "id": "plan",
                    "title": "Plan",
                    "source": "structured",
                    "structured_section_id": "plan",
                },
                {
                    "id": "safety-net",
                    "title": "Safety net",
                    "source": "structured",
                    "structured_section_id": "safety-net",
                    "include_by_default": False,
                },
            ]
        },
    }


@pytest.fixture
def uti_topic_payload() -> dict[str, Any]:
    return _uti_topic_payload()


@pytest.fixture
def uti_topic() -> TopicConfig:
    return TopicConfig.model_validate(_uti_topic_payload())
