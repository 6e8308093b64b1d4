"""
Base Pydantic model for all request bodies.

Key features:
- frozen=True: Immutable after validation
- str_strip_whitespace=True: "  Juan " -> "Juan"
- populate_by_name=True: Accept both the camelCase alias and the field name
- extra='ignore': Ignore undeclared fields (client-side prices, totals...)
"""

from pydantic import BaseModel, ConfigDict

EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'


class BaseRequestModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        populate_by_name=True,
        extra='ignore',
    )
