PRODUCTS = "products"
ORDERS = "orders"
ORDER_ITEMS = "orderItems"
USERS = "users"
COUNTERS = "counters"

ORDER_COUNTER_ID = "orderCounter"
DISPLAY_ID_PREFIX = "ORD"

# order statuses
STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in-progress"
STATUS_PICKED = "picked"

ORDER_STATUSES = {
    STATUS_DRAFT: "Draft",
    STATUS_PENDING: "Waiting for picking",
    STATUS_IN_PROGRESS: "Picking in progress",
    STATUS_PICKED: "Completed",
}

# order item statuses
ITEM_PENDING = "pending"
ITEM_PICKED = "picked"

ORDER_TYPE_UNIT = "unit"
ORDER_TYPE_PACKAGE = "package"

# local storage keys
CART_KEY = "warehouse_cart"
EDIT_CART_KEY = "warehouse_edit_cart"
PROGRESS_KEY = "picking_progress"

UNKNOWN = "unknown"

WEIGHT_UNITS = ("kg", "g", "l", "ml")
