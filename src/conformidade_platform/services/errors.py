"""Service-layer exceptions. Routes translate them into HTTP responses."""


class NotFoundError(Exception):
    """A referenced row does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")
