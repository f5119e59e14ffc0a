"""
    Sqlrelate is a package for declaring relations between models mapped
    to SQL tables and resolving them either lazily for one record or in
    batch for many records with a single query per relation (eager
    loading). It includes a query builder, a collection type, and a
    reference driver for sqlite. The useful features are exposed from
    the root level of the package.
"""

from sqlrelate.classes import (
    SqliteDriver,
    SqliteResult,
    QueryBuilder,
    Model,
    Collection,
    Row,
    JoinSpec,
    WhereClause,
    eager_load,
)
from sqlrelate.interfaces import (
    ResultProtocol,
    DriverProtocol,
    ModelProtocol,
    QueryBuilderProtocol,
    RelationProtocol,
    RelatedModel,
    RelatedCollection,
)
from sqlrelate.relations import (
    Relation,
    RelationProperty,
    HasOne,
    HasMany,
    BelongsTo,
    BelongsToMany,
    has_one,
    has_many,
    belongs_to,
    belongs_to_many,
)
from sqlrelate.errors import UsageError
from sqlrelate.version import version
