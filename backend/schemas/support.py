"""
Support ticket request bodies.
"""

from typing import Literal, Optional

from pydantic import Field

from schemas.base import BaseRequestModel, EMAIL_PATTERN

TicketStatusType = Literal['open', 'in_progress', 'resolved', 'closed']
TicketPriorityType = Literal['low', 'normal', 'high']


class TicketCreate(BaseRequestModel):
    name: str = Field(min_length=2, max_length=200)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    subject: str = Field(min_length=3, max_length=200)
    message: str = Field(min_length=10, max_length=5000)
    order_id: Optional[str] = Field(default=None, validation_alias='orderId', max_length=64)
    priority: TicketPriorityType = 'normal'


class TicketReply(BaseRequestModel):
    message: str = Field(min_length=1, max_length=5000)


class TicketUpdate(BaseRequestModel):
    status: Optional[TicketStatusType] = None
    priority: Optional[TicketPriorityType] = None
