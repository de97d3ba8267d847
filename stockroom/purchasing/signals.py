from django.dispatch import Signal

# Sent by PurchaseOrderWorkflow after an order reaches a terminal status.
# Arguments: order, status
purchase_order_confirmed = Signal()
