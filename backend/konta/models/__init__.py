from .users import User
from .contacts import Customer, Supplier
from .catalog import Product, StockMovement
from .documents import DocumentSequence
from .invoices import Invoice, InvoiceItem, CreditNote, CreditNoteItem
from .orders import SalesOrder, SalesOrderItem
from .purchases import Purchase, PurchaseItem
from .expenses import Expense
from .settings import CompanySettings

__all__ = [
    'User',
    'Customer', 'Supplier',
    'Product', 'StockMovement',
    'DocumentSequence',
    'Invoice', 'InvoiceItem', 'CreditNote', 'CreditNoteItem',
    'SalesOrder', 'SalesOrderItem',
    'Purchase', 'PurchaseItem',
    'Expense',
    'CompanySettings',
]
