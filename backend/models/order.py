"""
Order Model - checkout orders, payment and shipment state

Status flow (see constants.ALLOWED_TRANSITIONS):
- PENDING    -> waiting for the gateway (or cash/transfer confirmation)
- PAID       -> payment confirmed; stock already decremented
- PROCESSED  -> shipment created with a carrier, or marked shipped by an admin
- DELIVERED  -> carrier (or admin) confirmed delivery
- CANCELLED  -> expired, cancelled, refunded; reserved stock restored

`stock_decremented` is the single guard that keeps stock moving exactly
once per order no matter how many times the payment webhook is delivered.
"""
import uuid

from constants import OrderStatus, ShipmentStatus
from models.database import db, utcnow, iso, money


def generate_order_id():
    return f"ord_{uuid.uuid4().hex[:16]}"


class Order(db.Model):
    __tablename__ = 'orders'

    id = db.Column(db.String(64), primary_key=True, default=generate_order_id)

    # Customer
    customer_name = db.Column(db.String(200), nullable=False)
    customer_email = db.Column(db.String(255), index=True)
    customer_phone = db.Column(db.String(60))
    customer_address = db.Column(db.Text)

    # Structured shipping address (preferred over parsing customer_address)
    shipping_street = db.Column(db.String(200))
    shipping_number = db.Column(db.String(20))
    shipping_floor = db.Column(db.String(10))
    shipping_apartment = db.Column(db.String(10))
    shipping_city = db.Column(db.String(120))
    shipping_province = db.Column(db.String(120))
    shipping_postal_code = db.Column(db.String(10))

    shipping_method_id = db.Column(db.String(60))
    shipping_method_name = db.Column(db.String(120))
    shipping_cost = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    shipping_agency = db.Column(db.String(60))
    carrier = db.Column(db.String(40))

    subtotal = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    discount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.PENDING, index=True)

    # MercadoPago
    mp_payment_id = db.Column(db.String(64), unique=True, index=True)
    mp_preference_id = db.Column(db.String(128), index=True)
    mp_status = db.Column(db.String(40))
    payment_url = db.Column(db.String(512))  # checkout link, reused by payment reminders

    stock_decremented = db.Column(db.Boolean, default=False, nullable=False)

    # Shipment
    shipment_status = db.Column(db.String(20), default=ShipmentStatus.PENDING, nullable=False, index=True)
    shipment_id = db.Column(db.String(120))
    tracking_number = db.Column(db.String(120), index=True)
    shipment_error = db.Column(db.Text)
    shipment_attempts = db.Column(db.Integer, default=0, nullable=False)

    admin_notes = db.Column(db.Text)
    payment_reminder_sent = db.Column(db.Boolean, default=False, nullable=False)

    expires_at = db.Column(db.DateTime, index=True)
    paid_at = db.Column(db.DateTime)
    shipped_at = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        'OrderItem', back_populates='order',
        cascade='all, delete-orphan', order_by='OrderItem.id'
    )

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items)

    def add_note(self, note):
        stamp = utcnow().strftime('%Y-%m-%d %H:%M')
        line = f"[{stamp}] {note}"
        self.admin_notes = f"{self.admin_notes}\n{line}" if self.admin_notes else line

    def to_summary(self):
        """Public-safe view for success pages and tracking lookups."""
        return {
            'id': self.id,
            'status': self.status,
            'total': money(self.total),
            'paymentMethod': self.payment_method,
            'shippingMethod': self.shipping_method_name,
            'carrier': self.carrier,
            'trackingNumber': self.tracking_number,
            'itemCount': self.item_count,
            'createdAt': iso(self.created_at),
        }

    def to_dict(self, include_admin=False):
        result = {
            'id': self.id,
            'customerName': self.customer_name,
            'customerEmail': self.customer_email,
            'customerPhone': self.customer_phone,
            'customerAddress': self.customer_address,
            'shipping': {
                'street': self.shipping_street,
                'number': self.shipping_number,
                'floor': self.shipping_floor,
                'apartment': self.shipping_apartment,
                'city': self.shipping_city,
                'province': self.shipping_province,
                'postalCode': self.shipping_postal_code,
                'methodId': self.shipping_method_id,
                'methodName': self.shipping_method_name,
                'cost': money(self.shipping_cost),
                'agency': self.shipping_agency,
                'carrier': self.carrier,
            },
            'subtotal': money(self.subtotal),
            'discount': money(self.discount),
            'total': money(self.total),
            'paymentMethod': self.payment_method,
            'status': self.status,
            'trackingNumber': self.tracking_number,
            'shipmentStatus': self.shipment_status,
            'items': [item.to_dict() for item in self.items],
            'paidAt': iso(self.paid_at),
            'shippedAt': iso(self.shipped_at),
            'deliveredAt': iso(self.delivered_at),
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }
        if include_admin:
            result.update({
                'mpPaymentId': self.mp_payment_id,
                'mpPreferenceId': self.mp_preference_id,
                'mpStatus': self.mp_status,
                'stockDecremented': self.stock_decremented,
                'shipmentId': self.shipment_id,
                'shipmentError': self.shipment_error,
                'shipmentAttempts': self.shipment_attempts,
                'adminNotes': self.admin_notes,
                'expiresAt': iso(self.expires_at),
            })
        return result


class OrderItem(db.Model):
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(64), db.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)
    product_name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    size = db.Column(db.String(30))
    color = db.Column(db.String(60))

    order = db.relationship('Order', back_populates='items')
    product = db.relationship('Product')

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'productName': self.product_name,
            'quantity': self.quantity,
            'unitPrice': money(self.unit_price),
            'lineTotal': money(self.unit_price * self.quantity) if self.unit_price is not None else None,
            'size': self.size,
            'color': self.color,
        }
