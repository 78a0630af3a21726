from .catalog import Article, StockMovement
from .customers import Customer, AccountTopUp
from .sales import Transaction, TransactionItem
from .documents import PurchaseDocument, PurchaseDocumentItem, Invoice, InvoiceItem, DocumentSequence
from .accounting import FiscalYear, YearEndReport
from .audit import AuditLog

__all__ = [
    'Article', 'StockMovement',
    'Customer', 'AccountTopUp',
    'Transaction', 'TransactionItem',
    'PurchaseDocument', 'PurchaseDocumentItem', 'Invoice', 'InvoiceItem', 'DocumentSequence',
    'FiscalYear', 'YearEndReport',
    'AuditLog',
]
