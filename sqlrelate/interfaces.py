"""
    The interfaces used by the package. `DriverProtocol` and
    `ResultProtocol` must be implemented to bind the library to a new
    SQL driver. `RelationProtocol` describes the shared contract of the
    four relation types, including the three-step eager loading
    protocol. `RelatedModel` and `RelatedCollection` describe the values
    returned by the relation properties created by the helper functions
    in `sqlrelate.relations`.
"""


from __future__ import annotations
from types import TracebackType
from typing import (
    Any,
    Iterable,
    Iterator,
    Optional,
    Protocol,
    Type,
    runtime_checkable,
)


@runtime_checkable
class ResultProtocol(Protocol):
    """Interface showing how the result of a driver query should
        function. Rows are mappings of column name (or alias) to value.
    """
    @property
    def row_count(self) -> int:
        """The number of rows changed by the statement."""
        ...

    @property
    def last_insert_id(self) -> Any:
        """The id generated by the last insert statement, if any."""
        ...

    def fetch(self) -> Optional[dict]:
        """Get one row returned by the query, or None."""
        ...

    def fetch_all(self) -> list[dict]:
        """Get all rows returned by the query."""
        ...


@runtime_checkable
class DriverProtocol(Protocol):
    """Interface showing how a database driver should function. Used
        as a context manager, it should wrap the enclosed statements in
        a transaction.
    """
    def query(self, sql: str, bindings: Iterable[Any] = ()) -> ResultProtocol:
        """Execute a single parameterized statement using positional
            `?` placeholders and return the result.
        """
        ...

    def __enter__(self) -> DriverProtocol:
        """Begin a transaction."""
        ...

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                exc_value: Optional[BaseException],
                traceback: Optional[TracebackType]) -> None:
        """Commit or rollback as appropriate."""
        ...


@runtime_checkable
class ModelProtocol(Protocol):
    """Interface showing how a model should function."""
    @property
    def table(self) -> str:
        """Str with the name of the table."""
        ...

    @property
    def primary_key(self) -> str:
        """Str with the name of the primary key column."""
        ...

    @property
    def foreign_key(self) -> str:
        """Str with the default name of foreign keys referencing this
            model, e.g. 'post_id'.
        """
        ...

    @property
    def short_name(self) -> str:
        """Lowercased short name of the model class."""
        ...

    @property
    def attributes(self) -> dict:
        """Dict of column values."""
        ...

    @property
    def exists(self) -> bool:
        """True once the instance was persisted or hydrated from a row."""
        ...

    @property
    def relations(self) -> dict:
        """Dict of resolved relation values by relation name."""
        ...

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value from the attribute bag."""
        ...

    def set(self, key: str, value: Any) -> ModelProtocol:
        """Write a value into the attribute bag."""
        ...

    @classmethod
    def find(cls, id: Any) -> Optional[ModelProtocol]:
        """Find a record by its primary key. Return None if it does not
            exist.
        """
        ...

    @classmethod
    def insert(cls, data: dict) -> ModelProtocol:
        """Insert a new record and return the instance."""
        ...

    def save(self) -> ModelProtocol:
        """Insert or update depending upon `exists`. Return self in
            monad pattern.
        """
        ...

    def delete(self) -> bool:
        """Delete the record. Return False if it was never persisted."""
        ...

    @classmethod
    def query(cls) -> QueryBuilderProtocol:
        """Return a query builder for the model."""
        ...


@runtime_checkable
class QueryBuilderProtocol(Protocol):
    """Interface showing how a query builder should function."""
    def select(self, columns: list[str]) -> QueryBuilderProtocol:
        """Set the columns to select."""
        ...

    def where(self, column: str, operator: Any = None,
              value: Any = None) -> QueryBuilderProtocol:
        """Add an 'and' clause. `where(column, value)` means '='."""
        ...

    def or_where(self, column: str, operator: Any = None,
                 value: Any = None) -> QueryBuilderProtocol:
        """Add an 'or' clause. `or_where(column, value)` means '='."""
        ...

    def where_in(self, column: str, values: list) -> QueryBuilderProtocol:
        """Add a 'column IN (...)' clause."""
        ...

    def where_not_in(self, column: str, values: list) -> QueryBuilderProtocol:
        """Add a 'column NOT IN (...)' clause."""
        ...

    def where_null(self, column: str) -> QueryBuilderProtocol:
        """Add a 'column IS NULL' clause."""
        ...

    def where_not_null(self, column: str) -> QueryBuilderProtocol:
        """Add a 'column IS NOT NULL' clause."""
        ...

    def order_by(self, column: str, direction: str = 'asc') -> QueryBuilderProtocol:
        """Add a sort pair."""
        ...

    def limit(self, value: int) -> QueryBuilderProtocol:
        """Set the limit."""
        ...

    def offset(self, value: int) -> QueryBuilderProtocol:
        """Set the offset."""
        ...

    def to_sql(self, is_count: bool = False) -> str:
        """Render the parameterized SQL."""
        ...

    def get_bindings(self) -> list:
        """Return the bindings in placeholder order."""
        ...

    def get(self) -> Iterable[ModelProtocol]:
        """Run the query and return the hydrated results."""
        ...

    def first(self) -> Optional[ModelProtocol]:
        """Run the query with limit 1 and return the first result."""
        ...

    def count(self) -> int:
        """Return the number of matching records."""
        ...

    def exists(self) -> bool:
        """Return True if any record matches."""
        ...


@runtime_checkable
class RelationProtocol(Protocol):
    """Interface showing how a relation should function. The batch
        path is `add_eager_constraints` -> `get_eager` -> `match` and
        must issue a single query regardless of the number of owners.
    """
    def get(self) -> Any:
        """Resolve the relation for the bound owner. Returns a model or
            None for to-one relations, a collection for to-many.
        """
        ...

    def add_eager_constraints(self, owners: list[ModelProtocol]) -> None:
        """Constrain the query to the keys of all the owners."""
        ...

    def get_eager(self) -> Iterable[ModelProtocol]:
        """Run the eager query and hydrate every row."""
        ...

    def match(self, owners: list[ModelProtocol], results: Iterable[ModelProtocol],
              relation: str) -> None:
        """Assign the results to `owner.relations[relation]` for each
            owner, preserving the order of owners.
        """
        ...


@runtime_checkable
class RelatedModel(ModelProtocol, Protocol):
    """Interface showing how the value of a to-one relation property
        behaves. It is falsy when nothing is related.
    """
    def __call__(self) -> RelationProtocol:
        """Return the underlying relation when the property is called as
            a method, e.g. `comment.post()` will return the relation
            while `comment.post` will access the related model.
        """
        ...


@runtime_checkable
class RelatedCollection(Protocol):
    """Interface showing how the value of a to-many relation property
        behaves.
    """
    def __call__(self) -> RelationProtocol:
        """Return the underlying relation when the property is called as
            a method, e.g. `post.comments()` will return the relation
            while `post.comments` will access the related models.
        """
        ...

    def __iter__(self) -> Iterator[ModelProtocol]:
        """Iterate over the related models."""
        ...

    def __getitem__(self, key) -> ModelProtocol:
        """Return the related model at the given index."""
        ...
