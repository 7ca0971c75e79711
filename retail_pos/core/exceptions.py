class RetailPosException(Exception):
    """Base exception for the retail POS core"""

    kind = "Internal"


class UnauthorizedException(RetailPosException):
    """Raised when no valid identity is presented"""

    kind = "Unauthenticated"


class ForbiddenException(RetailPosException):
    """Raised when the caller may not perform the operation"""

    kind = "Forbidden"


class SellerUnassignedException(ForbiddenException):
    """Raised when a SELLER without a tenant attempts a tenant-scoped operation"""

    kind = "SellerUnassigned"

    def __init__(self, message: str = "Seller must be assigned to a tenant"):
        super().__init__(message)


class CrossTenantAccessDeniedException(ForbiddenException):
    """Raised when a SELLER requests a tenant scope other than their own"""

    kind = "CrossTenantAccessDenied"

    def __init__(self, message: str = "Access denied: Cannot access data from different tenant"):
        super().__init__(message)


class AdminRequiredException(ForbiddenException):
    """Raised when a non-admin attempts an admin-only operation"""

    kind = "AdminRequired"

    def __init__(self, message: str = "Admin privileges required"):
        super().__init__(message)


class NotFoundException(RetailPosException):
    """
    Raised when an entity does not exist or is outside the caller's scope.

    The two cases are deliberately indistinguishable to the caller so that
    the existence of another tenant's data is never revealed.
    """

    kind = "NotFoundOrDenied"


class VariantNotFoundException(NotFoundException):
    """Raised by invoice creation for a variant missing from the tenant"""

    kind = "VariantNotFound"

    def __init__(self, variant_id: int):
        self.variant_id = variant_id
        super().__init__(f"Product variant {variant_id} not found")


class ValidationException(RetailPosException):
    """Raised for field-level validation errors; carries every violation"""

    kind = "ValidationFailed"

    def __init__(self, errors: list[str] | str):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class InsufficientStockException(RetailPosException):
    """Raised when a decrement exceeds the stock available for a variant"""

    kind = "InsufficientStock"

    def __init__(self, variant_id: int, available: int, requested: int):
        self.variant_id = variant_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for variant {variant_id}. "
            f"Available: {available}, Requested: {requested}"
        )


class ConflictException(RetailPosException):
    """Raised when a write collides with existing data"""

    kind = "Conflict"


class DuplicateBarcodeException(ConflictException):
    kind = "DuplicateBarcode"

    def __init__(self, barcode: str):
        self.barcode = barcode
        super().__init__(f"Barcode '{barcode}' already exists in the system")


class DuplicateTenantNameException(ConflictException):
    kind = "DuplicateTenantName"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"A tenant named '{name}' already exists")


class DependentDataExistsException(ConflictException):
    """Raised when a delete is blocked by rows that reference the target"""

    kind = "DependentDataExists"


class InternalException(RetailPosException):
    """Unexpected storage or logic failure; message is safe to show callers"""

    kind = "Internal"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
