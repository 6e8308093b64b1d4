"""
Models package - SQLAlchemy models
"""
from models.database import db
from models.catalog import Category, Product, ProductVariant, Review
from models.order import Order, OrderItem
from models.user import User
from models.processed_webhook import ProcessedWebhook
from models.support_ticket import SupportTicket, TicketMessage
from models.store_setting import StoreSetting
from models.password_reset import PasswordResetToken

__all__ = [
    'db',
    'Category',
    'Product',
    'ProductVariant',
    'Review',
    'Order',
    'OrderItem',
    'User',
    'ProcessedWebhook',
    'SupportTicket',
    'TicketMessage',
    'StoreSetting',
    'PasswordResetToken',
]
