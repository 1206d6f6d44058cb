"""
Example surveys used by the CLI demo and the tests.

build_example_survey() is a small paged eligibility survey:

    welcome   intro, auth (skipped on back once signed in)
    about     age, country        country == 'US' -> us, default -> intl
    us        state (adults only)                  default -> final
    intl      region
    final     feedback, end block

build_pageless_example_survey() is three bare blocks with no sets.
"""
from typing import Any, Dict

from surveynav.model import Survey
from surveynav.serialization import survey_from_dict


def example_survey_dict() -> Dict[str, Any]:
    return {
        "name": "Example Eligibility Survey",
        "mode": "paged",
        "rootNode": {
            "type": "section",
            "uuid": "root",
            "items": [
                {
                    "type": "set",
                    "uuid": "page-welcome",
                    "items": [
                        {"type": "html", "uuid": "intro", "label": "Welcome"},
                        {"type": "auth", "uuid": "login", "label": "Sign in", "skipIfLoggedIn": True},
                    ],
                },
                {
                    "type": "set",
                    "uuid": "page-about",
                    "items": [
                        {"type": "textfield", "uuid": "q-age", "fieldName": "age", "label": "Your age"},
                        {
                            "type": "select",
                            "uuid": "q-country",
                            "fieldName": "country",
                            "label": "Country",
                            "navigationRules": [
                                {"condition": "country == 'US'", "target": "page-us", "isPage": True},
                                {"condition": "", "target": "page-intl", "isPage": True, "isDefault": True},
                            ],
                        },
                    ],
                },
                {
                    "type": "set",
                    "uuid": "page-us",
                    "items": [
                        {
                            "type": "select",
                            "uuid": "q-state",
                            "fieldName": "state",
                            "label": "State",
                            "visibleIf": "age >= 18",
                            "navigationRules": [
                                {"condition": "", "target": "page-final", "isPage": True, "isDefault": True},
                            ],
                        },
                    ],
                },
                {
                    "type": "set",
                    "uuid": "page-intl",
                    "items": [
                        {"type": "textfield", "uuid": "q-region", "fieldName": "region", "label": "Region"},
                    ],
                },
                {
                    "type": "set",
                    "uuid": "page-final",
                    "items": [
                        {
                            "type": "textarea",
                            "uuid": "q-feedback",
                            "fieldName": "feedback",
                            "label": "Anything else?",
                            "visibleIf": {"field": "age", "operator": ">=", "value": 18, "valueType": "number"},
                        },
                        {"type": "html", "uuid": "end", "label": "Thank you", "isEndBlock": True},
                    ],
                },
            ],
        },
    }


def build_example_survey() -> Survey:
    return survey_from_dict(example_survey_dict())


def build_pageless_example_survey() -> Survey:
    return survey_from_dict({
        "name": "Pageless Example",
        "rootNode": {
            "type": "section",
            "uuid": "root",
            "items": [
                {"type": "textfield", "uuid": "b1", "fieldName": "name"},
                {"type": "textfield", "uuid": "b2", "fieldName": "email"},
                {"type": "textarea", "uuid": "b3", "fieldName": "comments"},
            ],
        },
    })
