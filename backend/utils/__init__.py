"""
Utility modules for the backend.
"""
from .normalize import (
    ValidationError,
    to_int,
    to_float,
    to_bool,
    to_decimal,
    round_money,
    clamp_fraction,
    to_page,
)
