from .catalog import Product, Service
from .appointments import Appointment
from .transactions import Transaction, TransactionLine, TransactionPayment, RefundEvent
from .cash_register import CashRegisterSession, CashMovement

__all__ = [
    'Product', 'Service',
    'Appointment',
    'Transaction', 'TransactionLine', 'TransactionPayment', 'RefundEvent',
    'CashRegisterSession', 'CashMovement',
]
