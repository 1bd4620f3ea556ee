from .catalog import Product, Customer, Supplier, Employee
from .ledger import StockEvent, StockAssignment, Sequence
from .documents import (
    PurchaseOrder,
    Sale,
    SaleLine,
    CylinderTransaction,
    EmployeeSale,
    EmployeeSaleLine,
)

__all__ = [
    'Product', 'Customer', 'Supplier', 'Employee',
    'StockEvent', 'StockAssignment', 'Sequence',
    'PurchaseOrder', 'Sale', 'SaleLine', 'CylinderTransaction',
    'EmployeeSale', 'EmployeeSaleLine',
]
