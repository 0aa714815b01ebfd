"""
Database Models for TicketGate Payments
"""

from datetime import datetime
import enum


# Import db from extensions to ensure consistent instance
from extensions import db


class EsewaTransactionStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    VERIFICATION_FAILED = "verification_failed"


class EsewaTransaction(db.Model):
    """eSewa ePay transaction records"""

    __tablename__ = "esewa_transactions"

    id = db.Column(db.Integer, primary_key=True)
    transaction_uuid = db.Column(db.String(100), unique=True, nullable=False, index=True)
    product_code = db.Column(db.String(50), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(10, 2), default=0)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    reference = db.Column(db.String(100))  # Merchant-side order/purchase id
    transaction_code = db.Column(db.String(100))  # eSewa reference from the callback
    status = db.Column(db.String(50), default=EsewaTransactionStatus.PENDING.value)
    result_desc = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_completed(self):
        return self.status == EsewaTransactionStatus.COMPLETED.value

    def to_dict(self):
        return {
            "id": self.id,
            "transaction_uuid": self.transaction_uuid,
            "product_code": self.product_code,
            "amount": f"{self.amount:.2f}" if self.amount is not None else None,
            "tax_amount": f"{self.tax_amount:.2f}" if self.tax_amount is not None else None,
            "total_amount": f"{self.total_amount:.2f}" if self.total_amount is not None else None,
            "reference": self.reference,
            "transaction_code": self.transaction_code,
            "status": self.status,
            "result_desc": self.result_desc,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
        }
