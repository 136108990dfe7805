# watchshop/models/__init__.py
from .catalog import *           # Brand, Category, Product
from .user import *              # User
from .order import *             # Order, OrderItem, OrderAddress
from .order_status_log import *  # OrderStatusLog
from .stock_audit import *       # StockAudit
