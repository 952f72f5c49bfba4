"""Domain errors raised by the service layer.

Every error carries a stable ``code`` that the GraphQL layer exposes in the
``extensions`` of a resolution error. Services raise them and never retry;
the only failures swallowed anywhere are notification deliveries.
"""


class MarketError(Exception):
    code = "INTERNAL"
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidToken(MarketError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class TokenSuperseded(InvalidToken):
    code = "TOKEN_SUPERSEDED"
    default_message = "Token was superseded by a newer log in"


class UserNotFound(MarketError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class EmailNotVerified(MarketError):
    code = "EMAIL_NOT_VERIFIED"
    default_message = "Email address is not verified yet"


class Forbidden(MarketError):
    code = "FORBIDDEN"
    default_message = "Not a party to this resource"


Unauthorized = Forbidden


class ProductNotAvailable(MarketError):
    code = "PRODUCT_NOT_AVAILABLE"
    default_message = "Product is not for sale"


class SelfTradeForbidden(MarketError):
    code = "SELF_TRADE_FORBIDDEN"
    default_message = "Sellers cannot buy their own product"


class ImageListEmpty(MarketError):
    code = "IMAGE_LIST_EMPTY"
    default_message = "A product needs at least one image"


class EmptyComment(MarketError):
    code = "EMPTY_COMMENT"
    default_message = "Comment body is empty"


class InvalidUniversity(MarketError):
    code = "INVALID_UNIVERSITY"
    default_message = "University needs a department or a graduate school"


class InvalidEmail(MarketError):
    code = "INVALID_EMAIL"
    default_message = "Email address is not a university address"


class StorageError(MarketError):
    code = "STORAGE_ERROR"
    default_message = "Image storage failed"


class NotFound(MarketError):
    code = "NOT_FOUND"
    default_message = "Not found"


class ValidationError(MarketError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid arguments"


class ConcurrentUpdate(MarketError):
    code = "CONCURRENT_UPDATE"
    default_message = "The record was changed by another request, try again"

