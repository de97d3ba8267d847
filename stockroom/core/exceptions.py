"""
Domain errors raised by the stock ledger, movement recorder, purchase order
workflow and the export/import coordinators.

Views translate them into responses with ``error_response``; services never
build HTTP responses themselves.
"""


class StockroomError(Exception):
    """Base class for every domain error"""
    status_code = 400
    default_message = 'Operation failed.'

    def __init__(self, message=None, field=None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def as_dict(self):
        data = {'error': self.message}
        if self.field:
            data['field'] = self.field
        return data


class ValidationError(StockroomError):
    """Malformed or missing input; the caller should resubmit corrected data"""
    status_code = 400
    default_message = 'Invalid input.'


class InsufficientStock(StockroomError):
    """Withdrawal exceeds the quantity held at the location"""
    status_code = 409
    default_message = 'Not enough stock available in this warehouse.'

    def __init__(self, message=None, field='quantity', available=None, requested=None):
        self.available = available
        self.requested = requested
        if message is None and available is not None and requested is not None:
            message = f'Not enough stock available in this warehouse. Available: {available}, Requested: {requested}'
        super().__init__(message, field)


class UnknownLocation(StockroomError):
    """Withdrawal from a (product, warehouse) pair that holds no stock row"""
    status_code = 409
    default_message = 'Product not found in the selected warehouse.'


class InvalidState(StockroomError):
    """Operation against a terminal purchase order, or a lost confirm race"""
    status_code = 409
    default_message = 'Operation not allowed in the current state.'


class NotFound(StockroomError):
    status_code = 404
    default_message = 'Not found.'
