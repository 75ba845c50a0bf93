"""
Physical table naming.

Names must stay exactly as they are for compatibility with tables that
already exist in deployed databases.
"""

from psycopg2 import sql

from offline_store.resources import MaterializationID, ResourceID, ResourceType

RESOURCE_PREFIX = "featureform_resource"
MATERIALIZATION_PREFIX = "featureform_materialization"
TRAINING_SET_PREFIX = "featureform_trainingset"


def resource_table_name(resource_id: ResourceID) -> str:
    kind = "feature" if resource_id.type == ResourceType.FEATURE else "label"
    return f"{RESOURCE_PREFIX}_{kind}_{resource_id.name}_{resource_id.variant}"


def materialization_table_name(materialization_id: MaterializationID) -> str:
    return f"{MATERIALIZATION_PREFIX}_{materialization_id}"


def training_set_table_name(resource_id: ResourceID) -> str:
    return f"{TRAINING_SET_PREFIX}_{resource_id.name}_{resource_id.variant}"


def table_name(resource_id: ResourceID) -> str:
    """Table name for any resource or training-set identifier."""
    if resource_id.type == ResourceType.TRAINING_SET:
        return training_set_table_name(resource_id)
    return resource_table_name(resource_id)


def sanitize(identifier: str) -> sql.Identifier:
    """
    Quote an identifier for interpolation into a statement.

    Every table and column name that reaches a query goes through here;
    values are always passed as bound parameters instead.
    """
    return sql.Identifier(identifier)
