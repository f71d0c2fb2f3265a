from .tenancy import Tenant, TenantOwnedMixin, SaleOwnedMixin
from .auth import User
from .inventory import Product, StockLocation, Inventory, StockMovement, ProcessedSale
from .sales import Sale, SaleItem, Payment, SaleCounter, FiscalDocument
from .cash import CashSession, CashWithdrawal
from .audit import AuditLog
from .printing import PrintJob
from .customers import Customer, CustomerLedgerEntry

__all__ = [
    'Tenant', 'TenantOwnedMixin', 'SaleOwnedMixin',
    'User',
    'Product', 'StockLocation', 'Inventory', 'StockMovement', 'ProcessedSale',
    'Sale', 'SaleItem', 'Payment', 'SaleCounter', 'FiscalDocument',
    'CashSession', 'CashWithdrawal',
    'AuditLog',
    'PrintJob',
    'Customer', 'CustomerLedgerEntry',
]
