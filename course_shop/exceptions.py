"""
Custom exceptions for the course shop state layer.
"""


class ShopStateException(Exception):
    """Base exception for store operations"""
    pass


class ValidationError(ShopStateException):
    """Raised when an operation is given bad input"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(ShopStateException):
    """Raised when a lookup targets an id that is not in the collection"""
    def __init__(self, collection: str, item_id: str):
        self.collection = collection
        self.item_id = item_id
        super().__init__(f"Not found in {collection}: {item_id}")


class PersistenceError(ShopStateException):
    """Raised by storage backends when a blob cannot be read or written"""
    pass


class RedisConnectionError(PersistenceError):
    """Raised when Redis connection fails"""
    pass


class MigrationError(ShopStateException):
    """Raised when a stored record has a shape no migration understands"""
    def __init__(self, key: str, message: str):
        self.key = key
        self.message = message
        super().__init__(f"Cannot migrate {key}: {message}")
