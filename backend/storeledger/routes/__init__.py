from .system import system_bp
from .cash import cash_bp
from .sales import sales_bp
from .stock import stock_bp
from .sync import sync_bp
from .fiscal import fiscal_bp
from .customers import customers_bp
from .printing import printing_bp

ALL_BLUEPRINTS = (
    system_bp,
    cash_bp,
    sales_bp,
    stock_bp,
    sync_bp,
    fiscal_bp,
    customers_bp,
    printing_bp,
)
