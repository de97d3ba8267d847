from django.dispatch import Signal

# Sent by StockLedger after a delta is applied.
# Arguments: product_id, warehouse_id, delta, quantity (the new level)
stock_delta_applied = Signal()
