class NotFoundError(Exception):
    """Raised when a referenced record does not exist."""

    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class DeliveryError(Exception):
    """Raised when an outbound WhatsApp chunk could not be sent."""

    def __init__(self, phone: str, chunk_index: int, reason: str):
        self.phone = phone
        self.chunk_index = chunk_index
        self.reason = reason
        super().__init__(f"Delivery to {phone} failed at chunk {chunk_index}: {reason}")
