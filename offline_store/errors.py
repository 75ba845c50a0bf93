"""
Offline store errors.

Configuration, validation and existence failures get their own types so
callers can tell them apart. Backend errors from psycopg2 are never
wrapped; they propagate as raised.
"""


class OfflineStoreError(Exception):
    """Base class for offline store errors."""
    pass


class InvalidConfigError(OfflineStoreError):
    """Serialized connection configuration could not be used."""
    pass


class InvalidResourceIDError(OfflineStoreError):
    """A ResourceID of the wrong type was passed to an operation."""

    def __init__(self, resource_id, expected):
        self.resource_id = resource_id
        self.expected = tuple(expected)
        allowed = ", ".join(t.value for t in self.expected)
        super().__init__(
            f"resource {resource_id.name} ({resource_id.variant}) has type "
            f"{resource_id.type.value}, expected one of: {allowed}"
        )


class InvalidTrainingSetDefError(OfflineStoreError):
    """A TrainingSetDef is missing its label or features."""
    pass


class InvalidRecordError(OfflineStoreError):
    """A ResourceRecord failed validation before being written."""
    pass


class ValueDecodeError(OfflineStoreError):
    """A stored value document could not be decoded."""
    pass


class TableAlreadyExistsError(OfflineStoreError):
    def __init__(self, name: str, variant: str):
        self.name = name
        self.variant = variant
        super().__init__(f"table already exists: {name} ({variant})")


class TableNotFoundError(OfflineStoreError):
    def __init__(self, name: str, variant: str):
        self.name = name
        self.variant = variant
        super().__init__(f"table not found: {name} ({variant})")


class MaterializationNotFoundError(OfflineStoreError):
    def __init__(self, materialization_id: str):
        self.id = materialization_id
        super().__init__(f"materialization not found: {materialization_id}")


class TrainingSetNotFoundError(OfflineStoreError):
    def __init__(self, resource_id):
        self.id = resource_id
        super().__init__(
            f"training set not found: {resource_id.name} ({resource_id.variant})"
        )
