from __future__ import annotations
from .errors import tert, vert, tressa
from .interfaces import DriverProtocol, ResultProtocol
from .tools import short_name, table_name, foreign_key_name
from copy import copy
from dataclasses import dataclass, field
from functools import cmp_to_key
from os import environ
from types import TracebackType
from typing import Any, Callable, Iterable, Iterator, Optional, Type, Union
import json
import logging
import packify
import sqlite3


logger = logging.getLogger('sqlrelate.classes')

# distinguishes where(column, value) from where(column, operator, value)
_MISSING = object()


class SqliteResult:
    """Result of a statement run by SqliteDriver. Selected rows are
        read eagerly so that they survive the commit.
    """
    rows: list[dict]
    row_count: int
    last_insert_id: Any

    def __init__(self, cursor: sqlite3.Cursor) -> None:
        columns = [d[0] for d in cursor.description] if cursor.description else []
        self.rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
        self.row_count = cursor.rowcount
        self.last_insert_id = cursor.lastrowid
        self._position = 0

    def fetch(self) -> Optional[dict]:
        """Get the next row, or None when the rows are exhausted."""
        if self._position >= len(self.rows):
            return None
        row = self.rows[self._position]
        self._position += 1
        return row

    def fetch_all(self) -> list[dict]:
        """Get the remaining rows."""
        rows = self.rows[self._position:]
        self._position = len(self.rows)
        return rows


class SqliteDriver:
    """Driver for sqlite. Each statement is committed on its own unless
        it runs inside a `with driver:` block, which commits on a clean
        exit and rolls back when an exception escapes.
    """
    connection: sqlite3.Connection
    connection_info: str = environ.get('CONNECTION_STRING', '')
    depth: int

    def __init__(self, connection_info: str = '') -> None:
        """Initialize the instance. Raises TypeError for non-str
            connection_info or UsageError if it is empty.
        """
        if not connection_info and hasattr(self, 'connection_info'):
            connection_info = self.connection_info
        tert(type(connection_info) in (str, bytes),
            'connection_info must be str or bytes')
        tressa(len(connection_info) > 0, 'cannot use with empty connection_info')
        self.connection = sqlite3.connect(connection_info)
        self.depth = 0

    def query(self, sql: str, bindings: Iterable[Any] = ()) -> ResultProtocol:
        """Execute one parameterized statement and return the result.
            Raises TypeError for non-str sql; sqlite3 errors propagate.
        """
        tert(type(sql) is str, 'sql must be str')
        bindings = list(bindings)
        logger.debug('%s %s', sql, bindings)
        result = SqliteResult(self.connection.execute(sql, bindings))
        if self.depth == 0:
            self.connection.commit()
        return result

    def __enter__(self) -> SqliteDriver:
        """Enter a transaction block."""
        self.depth += 1
        return self

    def __exit__(self, __exc_type: Optional[Type[BaseException]],
                __exc_value: Optional[BaseException],
                __traceback: Optional[TracebackType]) -> None:
        """Exit the transaction block. Commit or rollback as appropriate
            once the outermost block exits.
        """
        self.depth -= 1
        if self.depth > 0:
            return

        if __exc_type is not None:
            self.connection.rollback()
        else:
            self.connection.commit()

    def close(self) -> None:
        """Close the connection."""
        self.connection.close()


@dataclass
class Row:
    """Class for representing a row from a query when no better model
        exists, e.g. a link table row or the pivot data of a related
        model.
    """
    data: dict = field()

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass
class JoinSpec:
    """Class for representing joins to be executed by a query builder."""
    kind: str = field()
    table: str = field()
    first: str = field()
    operator: str = field()
    second: str = field()

    def to_sql(self) -> str:
        return f'{self.kind.upper()} JOIN {self.table} ON ' + \
            f'{self.first} {self.operator} {self.second}'


@dataclass
class WhereClause:
    """One constraint of a query. The boolean connector is applied
        positionally: it joins this clause to everything before it.
    """
    kind: str = field()
    column: str = field()
    boolean: str = field(default='and')
    operator: str = field(default='=')
    value: Any = field(default=None)
    values: list = field(default_factory=list)

    def to_sql(self) -> str:
        if self.kind == 'basic':
            return f'{self.column} {self.operator} ?'
        if self.kind == 'in':
            return f'{self.column} IN ({",".join(["?" for _ in self.values])})'
        if self.kind == 'not_in':
            return f'{self.column} NOT IN ({",".join(["?" for _ in self.values])})'
        if self.kind == 'null':
            return f'{self.column} IS NULL'
        return f'{self.column} IS NOT NULL'

    def bindings(self) -> list:
        if self.kind == 'basic':
            return [self.value]
        if self.kind in ('in', 'not_in'):
            return list(self.values)
        return []


def data_get(item: Any, key: str|Callable, default: Any = None) -> Any:
    """Read a value from a model, mapping, or Row. A callable key is
        called with the item.
    """
    if callable(key):
        return key(item)
    if isinstance(item, Model):
        return item.get(key, default)
    if isinstance(item, Row):
        return item.data.get(key, default)
    if isinstance(item, dict):
        return item.get(key, default)
    return getattr(item, key, default)


class QueryBuilder:
    """Query constraint builder. Accumulates constraints, renders them
        into SQL with positional `?` placeholders, and runs the result
        through the injected driver. Bound either to a Model subclass
        (results are hydrated into that model) or to a bare table name
        (results are Rows).
    """
    model: Optional[Type[Model]]
    driver: Optional[DriverProtocol]
    table: str
    columns: list[str]
    wheres: list[WhereClause]
    orders: list[tuple[str, str]]
    joins: list[JoinSpec]
    limit_value: Optional[int]
    offset_value: Optional[int]
    eager: dict[str, Optional[Callable]]
    operators: tuple[str] = ('=', '!=', '<>', '<', '>', '<=', '>=', 'like', 'not like')

    def __init__(self, model_or_table: Type[Model]|str,
                 driver: Optional[DriverProtocol] = None) -> None:
        """Initialize the instance. Raises TypeError for an invalid
            model_or_table.
        """
        tert(type(model_or_table) is str or
             (isinstance(model_or_table, type) and issubclass(model_or_table, Model)),
             'model_or_table must be Type[Model]|str')
        if type(model_or_table) is str:
            vert(len(model_or_table) > 0, 'table cannot be empty')
            self.model = None
            self.table = model_or_table
        else:
            self.model = model_or_table
            self.table = model_or_table.table
        if driver is None and self.model is not None:
            driver = self.model.driver
        self.driver = driver
        self.columns = ['*']
        self.wheres = []
        self.orders = []
        self.joins = []
        self.limit_value = None
        self.offset_value = None
        self.eager = {}

    def clone(self) -> QueryBuilder:
        """Returns a copy that can be constrained independently."""
        other = copy(self)
        other.columns = list(self.columns)
        other.wheres = list(self.wheres)
        other.orders = list(self.orders)
        other.joins = list(self.joins)
        other.eager = dict(self.eager)
        return other

    def select(self, columns: list[str]|str, *more: str) -> QueryBuilder:
        """Sets the columns to select. Accepts a list or positional
            column names. Raises TypeError for invalid columns.
        """
        columns = [columns, *more] if type(columns) is str else [*columns, *more]
        tert(all([type(c) is str for c in columns]), 'select columns must be list[str]')
        vert(len(columns) > 0, 'select columns cannot be empty')
        self.columns = columns
        return self

    def _add_basic(self, boolean: str, column: str, operator: Any, value: Any) -> QueryBuilder:
        if value is _MISSING:
            value = operator
            operator = '='
        tert(type(column) is str, 'column must be str')
        vert(len(column) > 0, 'column cannot be empty')
        tert(type(operator) is str, 'operator must be str')
        vert(operator.lower() in self.operators, f'unsupported operator {operator}')
        self.wheres.append(WhereClause(
            'basic', column, boolean, operator=operator.upper(), value=value
        ))
        return self

    def where(self, column: str, operator: Any = None, value: Any = _MISSING) -> QueryBuilder:
        """Save the 'column operator ?' clause joined with 'and', then
            return self. `where(column, value)` is the same as
            `where(column, '=', value)`. Raises TypeError or ValueError
            for invalid column or operator.
        """
        return self._add_basic('and', column, operator, value)

    def or_where(self, column: str, operator: Any = None, value: Any = _MISSING) -> QueryBuilder:
        """Save the 'column operator ?' clause joined with 'or', then
            return self. Raises TypeError or ValueError for invalid
            column or operator.
        """
        return self._add_basic('or', column, operator, value)

    def _add_list(self, kind: str, column: str, values: Iterable) -> QueryBuilder:
        tert(type(column) is str, 'column must be str')
        tert(type(values) in (tuple, list, set) or isinstance(values, Collection),
             'values must be list, tuple, set, or Collection')
        values = list(values)
        vert(len(column) > 0, 'column cannot be empty')
        vert(len(values) > 0, 'values cannot be empty')
        self.wheres.append(WhereClause(kind, column, values=values))
        return self

    def where_in(self, column: str, values: Iterable) -> QueryBuilder:
        """Save the 'column IN (...)' clause and params, then return
            self. Raises TypeError or ValueError for invalid column or
            values.
        """
        return self._add_list('in', column, values)

    def where_not_in(self, column: str, values: Iterable) -> QueryBuilder:
        """Save the 'column NOT IN (...)' clause and params, then return
            self. Raises TypeError or ValueError for invalid column or
            values.
        """
        return self._add_list('not_in', column, values)

    def where_null(self, column: str) -> QueryBuilder:
        """Save the 'column IS NULL' clause, then return self."""
        tert(type(column) is str, 'column must be str')
        self.wheres.append(WhereClause('null', column))
        return self

    def where_not_null(self, column: str) -> QueryBuilder:
        """Save the 'column IS NOT NULL' clause, then return self."""
        tert(type(column) is str, 'column must be str')
        self.wheres.append(WhereClause('not_null', column))
        return self

    def order_by(self, column: str, direction: str = 'asc') -> QueryBuilder:
        """Adds a sort pair. Raises TypeError or ValueError for invalid
            column or direction.
        """
        tert(type(column) is str, 'column must be str')
        tert(type(direction) is str, 'direction must be str')
        vert(direction.lower() in ('asc', 'desc'), 'direction must be asc or desc')
        self.orders.append((column, direction.upper()))
        return self

    def limit(self, value: int) -> QueryBuilder:
        """Sets the maximum number of rows. Raises TypeError or
            ValueError for invalid value.
        """
        tert(type(value) is int, 'limit must be int')
        vert(value > 0, 'limit must be positive int')
        self.limit_value = value
        return self

    def take(self, value: int) -> QueryBuilder:
        """Alias for limit."""
        return self.limit(value)

    def offset(self, value: int) -> QueryBuilder:
        """Sets the number of rows to skip. Raises TypeError or
            ValueError for invalid value.
        """
        tert(type(value) is int, 'offset must be int')
        vert(value >= 0, 'offset must be positive int')
        self.offset_value = value
        return self

    def skip(self, value: int) -> QueryBuilder:
        """Alias for offset."""
        return self.offset(value)

    def join(self, table: str, first: str, operator: str, second: str,
             kind: str = 'inner') -> QueryBuilder:
        """Adds a join. Raises TypeError or ValueError for invalid
            parameters.
        """
        tert(all([type(p) is str for p in (table, first, operator, second, kind)]),
             'join parameters must be str')
        vert(operator in ('=', '>', '>=', '<', '<=', '<>', '!='),
             'comparison must be in (=, >, >=, <, <=, <>, !=)')
        vert(kind in ('inner', 'left'), 'kind must be inner or left')
        self.joins.append(JoinSpec(kind, table, first, operator, second))
        return self

    def with_relations(self, *names: str, **constrained: Callable) -> QueryBuilder:
        """Request relations to be eager loaded onto the results of get.
            Keyword arguments map a relation name to a callable that
            receives the relation to add constraints.
        """
        for name in names:
            tert(type(name) is str, 'relation names must be str')
            self.eager[name] = None
        for name, constraint in constrained.items():
            tert(callable(constraint), 'relation constraints must be callable')
            self.eager[name] = constraint
        return self

    def compile_wheres(self) -> str:
        """Joins the where clauses with their connectors. The first
            clause has no connector; there is no grouping.
        """
        sql = ''
        for index, clause in enumerate(self.wheres):
            if index > 0:
                sql += f' {clause.boolean.upper()} '
            sql += clause.to_sql()
        return sql

    def to_sql(self, is_count: bool = False) -> str:
        """Render the SQL with `?` placeholders. The count form selects
            `COUNT(*) AS count` and drops ordering, limit, and offset.
        """
        if is_count:
            sql = f'SELECT COUNT(*) AS count FROM {self.table}'
        else:
            sql = f'SELECT {", ".join(self.columns)} FROM {self.table}'

        for join in self.joins:
            sql += ' ' + join.to_sql()

        if len(self.wheres) > 0:
            sql += ' WHERE ' + self.compile_wheres()

        if is_count:
            return sql

        if len(self.orders) > 0:
            sql += ' ORDER BY ' + ', '.join([f'{c} {d}' for c, d in self.orders])

        if self.limit_value:
            sql += f' LIMIT {self.limit_value}'
        elif self.offset_value:
            # sqlite rejects OFFSET without LIMIT
            sql += ' LIMIT -1'

        if self.offset_value:
            sql += f' OFFSET {self.offset_value}'

        return sql

    def get_bindings(self) -> list:
        """Returns the bindings in the order of their placeholders."""
        bindings = []
        for clause in self.wheres:
            bindings.extend(clause.bindings())
        return bindings

    def _get_driver(self) -> DriverProtocol:
        tressa(self.driver is not None, f'no driver configured for {self.table}')
        return self.driver

    def rows(self) -> list[dict]:
        """Run the query and return the raw rows."""
        return self._get_driver().query(self.to_sql(), self.get_bindings()).fetch_all()

    def hydrate(self, rows: list[dict]) -> Collection:
        """Turn raw rows into models (or Rows for a bare table)."""
        if self.model is None:
            return Collection([Row(data=dict(row)) for row in rows])
        return Collection([self.model.hydrate(row, self.driver) for row in rows])

    def get(self) -> Collection:
        """Run the query and return a Collection of results with any
            requested relations eager loaded.
        """
        results = self.hydrate(self.rows())
        for name, constraint in self.eager.items():
            eager_load(results.items, name, self.driver, constraint)
        return results

    def first(self) -> Optional[Model|Row]:
        """Run the query with limit 1 and return the first result or
            None.
        """
        return self.clone().limit(1).get().first()

    def find(self, id: Any) -> Optional[Model|Row]:
        """Find a record by its primary key."""
        tressa(self.model is not None, 'cannot find by id without a model')
        return self.clone().where(self.model.primary_key, id).first()

    def count(self) -> int:
        """Returns the number of records matching the query."""
        row = self._get_driver().query(self.to_sql(True), self.get_bindings()).fetch()
        return int(row['count']) if row else 0

    def exists(self) -> bool:
        """Returns True if any record matches the query."""
        return self.count() > 0

    def insert(self, data: dict) -> ResultProtocol:
        """Insert one row and return the driver result. Raises TypeError
            or ValueError for invalid data.
        """
        tert(isinstance(data, dict), 'data must be dict')
        vert(len(data) > 0, 'data cannot be empty')
        columns = list(data.keys())
        sql = f'INSERT INTO {self.table} ({", ".join(columns)})' + \
            f' VALUES ({", ".join(["?" for _ in columns])})'
        return self._get_driver().query(sql, [data[c] for c in columns])

    def update(self, values: dict) -> int:
        """Update the matching rows and return the number of rows
            updated. Raises TypeError for invalid values.
        """
        tert(isinstance(values, dict), 'values must be dict')
        tressa(len(self.joins) == 0, 'cannot update a joined query')
        if len(values) == 0:
            return 0
        sql = f'UPDATE {self.table} SET ' + ', '.join([f'{c} = ?' for c in values])
        if len(self.wheres) > 0:
            sql += ' WHERE ' + self.compile_wheres()
        bindings = [*values.values(), *self.get_bindings()]
        return self._get_driver().query(sql, bindings).row_count

    def delete(self) -> int:
        """Delete the matching rows and return the number deleted."""
        tressa(len(self.joins) == 0, 'cannot delete from a joined query')
        sql = f'DELETE FROM {self.table}'
        if len(self.wheres) > 0:
            sql += ' WHERE ' + self.compile_wheres()
        return self._get_driver().query(sql, self.get_bindings()).row_count


class Model:
    """General model for mapping a SQL row to an in-memory object. The
        table, short_name, and foreign_key class attributes are derived
        once when a subclass is created unless the subclass sets them.
    """
    table: str = 'models'
    primary_key: str = 'id'
    short_name: str = 'model'
    foreign_key: str = 'model_id'
    columns: tuple = ()
    hidden: tuple = ()
    driver: Optional[DriverProtocol] = None
    query_builder_class: Type[QueryBuilder] = QueryBuilder
    attributes: dict
    relations: dict
    exists: bool
    pivot: Optional[Row]

    def __init_subclass__(cls, **kwargs) -> None:
        super().__init_subclass__(**kwargs)
        if 'short_name' not in cls.__dict__:
            cls.short_name = short_name(cls)
        if 'table' not in cls.__dict__:
            cls.table = table_name(cls)
        if 'foreign_key' not in cls.__dict__:
            cls.foreign_key = foreign_key_name(cls.short_name)
        for column in cls.columns:
            if not hasattr(cls, column):
                setattr(cls, column, cls.create_property(column))

    def __init__(self, attributes: dict = {}, driver: Optional[DriverProtocol] = None) -> None:
        """Initialize the instance. Raises TypeError for non-dict
            attributes.
        """
        tert(isinstance(attributes, dict), 'attributes must be dict')
        self.attributes = {}
        self.relations = {}
        self.exists = False
        self.pivot = None
        if driver is not None:
            self.driver = driver
        self.fill(attributes)

    @staticmethod
    def create_property(name: str) -> property:
        """Create a dynamic property for the column with the given name."""
        @property
        def prop(self):
            return self.attributes.get(name)
        @prop.setter
        def prop(self, value):
            self.set(name, value)
        return prop

    def __getattr__(self, name: str) -> Any:
        """Fall back to the attribute bag for undeclared columns."""
        attributes = self.__dict__.get('attributes')
        if attributes is not None and name in attributes:
            return attributes[name]
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value from the attribute bag."""
        return self.attributes.get(key, default)

    def set(self, key: str, value: Any) -> Model:
        """Write a value into the attribute bag. Return self in monad
            pattern. Raises UsageError when changing the primary key of
            a persisted model.
        """
        tert(type(key) is str, 'key must be str')
        tressa(not self.exists or key != self.primary_key
               or self.attributes.get(key) == value,
               'cannot change the primary key of a persisted model')
        self.attributes[key] = value
        return self

    def fill(self, attributes: dict) -> Model:
        """Set the given attributes, skipping any not in columns when
            columns are declared. Return self in monad pattern.
        """
        for key, value in attributes.items():
            if not self.columns or key in self.columns:
                self.set(key, value)
        return self

    @classmethod
    def hydrate(cls, row: dict, driver: Optional[DriverProtocol] = None) -> Model:
        """Make an instance from a fetched row and flag it as existing."""
        model = cls(driver=driver)
        model.attributes = dict(row)
        model.exists = True
        return model

    @staticmethod
    def encode_value(val: Any) -> str:
        """Encode a value for hashing. Uses the pack function from
            packify.
        """
        return packify.pack(val).hex()

    def __hash__(self) -> int:
        """Allow inclusion in sets. Raises TypeError for unencodable
            type within self.attributes (calls packify.pack).
        """
        data = self.encode_value(self.attributes)
        return hash(bytes(data, 'utf-8'))

    def __eq__(self, other) -> bool:
        """Allow comparisons. Raises TypeError on unencodable value in
            self.attributes or other.attributes.
        """
        if type(other) != type(self):
            return False

        return hash(self) == hash(other)

    def __repr__(self) -> str:
        """Pretty str representation."""
        return f"{self.__class__.__name__}(table='{self.table}', " + \
            f"primary_key='{self.primary_key}', " + \
            f"attributes={self.attributes}, exists={self.exists})"

    @classmethod
    def query(cls, driver: Optional[DriverProtocol] = None) -> QueryBuilder:
        """Returns a query builder for the model, bound to the injected
            driver or to the class driver.
        """
        return cls.query_builder_class(cls, driver or cls.driver)

    def new_query(self) -> QueryBuilder:
        """Returns a query builder bound to this instance's driver."""
        return self.query(self.driver)

    @classmethod
    def with_relations(cls, *names: str, **constrained: Callable) -> QueryBuilder:
        """Returns a query builder that eager loads the named relations."""
        return cls.query().with_relations(*names, **constrained)

    @classmethod
    def all(cls, driver: Optional[DriverProtocol] = None) -> Collection:
        """Returns every record."""
        return cls.query(driver).get()

    @classmethod
    def find(cls, id: Any, driver: Optional[DriverProtocol] = None) -> Optional[Model]:
        """Find a record by its primary key. Return None if it does not
            exist.
        """
        return cls.query(driver).find(id)

    @classmethod
    def insert(cls, data: dict, driver: Optional[DriverProtocol] = None) -> Model:
        """Insert a new record and return the instance. The primary key
            is taken from the driver when the data does not include it.
            Raises TypeError if data is not a dict.
        """
        tert(isinstance(data, dict), 'data must be dict')
        model = cls(data, driver=driver)
        result = model.new_query().insert(model.attributes)
        if model.get(cls.primary_key) is None and result.last_insert_id is not None:
            model.attributes[cls.primary_key] = result.last_insert_id
        model.exists = True
        return model

    create = insert

    def save(self) -> Model:
        """Insert or update depending upon exists. Return self in monad
            pattern.
        """
        if not self.exists:
            saved = self.insert(self.attributes, driver=self.driver)
            self.attributes = saved.attributes
            self.exists = True
            return self

        changes = {
            key: value for key, value in self.attributes.items()
            if key != self.primary_key
        }
        self.new_query().where(self.primary_key, self.get(self.primary_key)).update(changes)
        return self

    def update(self, updates: dict) -> Model:
        """Apply the updates and persist them if the model exists.
            Return self in monad pattern.
        """
        tert(isinstance(updates, dict), 'updates must be dict')
        self.fill(updates)
        if self.exists:
            self.new_query().where(
                self.primary_key, self.get(self.primary_key)
            ).update({
                key: self.attributes[key] for key in updates
                if key in self.attributes and key != self.primary_key
            })
        return self

    def delete(self) -> bool:
        """Delete the record. Return False if it was never persisted."""
        if not self.exists or self.get(self.primary_key) is None:
            return False
        self.new_query().where(self.primary_key, self.get(self.primary_key)).delete()
        self.exists = False
        return True

    def reload(self) -> Model:
        """Reload values from the datastore. Return self in monad
            pattern. Raises UsageError if the model does not exist.
        """
        tressa(self.exists, 'cannot reload a model that does not exist')
        fresh = self.new_query().find(self.get(self.primary_key))
        if fresh is not None:
            self.attributes = fresh.attributes
        self.relations = {}
        return self

    def relation(self, name: str, driver: Optional[DriverProtocol] = None):
        """Returns a fresh relation for the named relation property.
            Raises ValueError if the name is not a relation.
        """
        prop = getattr(type(self), name, None)
        vert(callable(getattr(prop, 'make_relation', None)),
             f'{name} is not a relation of {type(self).__name__}')
        return prop.make_relation(self, driver)

    def load(self, *names: str, **constrained: Callable) -> Model:
        """Eager load the named relations onto this instance. Return
            self in monad pattern.
        """
        Collection([self]).load(*names, **constrained)
        return self

    def to_dict(self) -> dict:
        """Returns the attributes plus loaded relations, minus hidden."""
        result = dict(self.attributes)
        for name, value in self.relations.items():
            if isinstance(value, Collection):
                result[name] = value.to_list()
            elif isinstance(value, Model):
                result[name] = value.to_dict()
            else:
                result[name] = value
        if self.pivot is not None:
            result['pivot'] = dict(self.pivot.data)
        for key in self.hidden:
            result.pop(key, None)
        return result

    def to_json(self, **kwargs) -> str:
        """Returns the JSON encoding of to_dict."""
        return json.dumps(self.to_dict(), default=str, **kwargs)


class Collection:
    """Ordered container of models (or plain rows) with projection,
        dictionary construction, and set operations.
    """
    items: list

    def __init__(self, items: Iterable = ()) -> None:
        self.items = list(items)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.items})"

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator:
        return iter(self.items)

    def __getitem__(self, key: int|slice) -> Any:
        if isinstance(key, slice):
            return Collection(self.items[key])
        return self.items[key]

    def __contains__(self, item: Any) -> bool:
        return item in self.items

    def __eq__(self, other) -> bool:
        if isinstance(other, Collection):
            return self.items == other.items
        if isinstance(other, list):
            return self.items == other
        return False

    def all(self) -> list:
        """Returns a list of the items."""
        return list(self.items)

    def count(self) -> int:
        return len(self.items)

    def is_empty(self) -> bool:
        return len(self.items) == 0

    def is_not_empty(self) -> bool:
        return len(self.items) > 0

    def first(self, callback: Optional[Callable] = None, default: Any = None) -> Any:
        """Returns the first item (passing callback, if given)."""
        for item in self.items:
            if callback is None or callback(item):
                return item
        return default

    def last(self, callback: Optional[Callable] = None, default: Any = None) -> Any:
        """Returns the last item (passing callback, if given)."""
        return self.reverse().first(callback, default)

    def map(self, callback: Callable) -> Collection:
        return Collection([callback(item) for item in self.items])

    def filter(self, callback: Optional[Callable] = None) -> Collection:
        """Keeps the items passing callback, or the truthy items."""
        if callback is None:
            return Collection([item for item in self.items if item])
        return Collection([item for item in self.items if callback(item)])

    def where(self, key: str, operator: Any = None, value: Any = _MISSING) -> Collection:
        """Keeps the items whose key compares true against value.
            `where(key, value)` means '='.
        """
        if value is _MISSING:
            value = operator
            operator = '='
        comparisons = {
            '=': lambda a, b: a == b,
            '==': lambda a, b: a == b,
            '!=': lambda a, b: a != b,
            '<>': lambda a, b: a != b,
            '<': lambda a, b: a < b,
            '>': lambda a, b: a > b,
            '<=': lambda a, b: a <= b,
            '>=': lambda a, b: a >= b,
        }
        vert(operator in comparisons, f'unsupported operator {operator}')
        compare = comparisons[operator]
        return self.filter(lambda item: compare(data_get(item, key), value))

    def pluck(self, value: str|Callable, key: str|Callable = None) -> Union[Collection, dict]:
        """Projects each item onto value. When key is given, returns a
            dict mapping each item's key to its value.
        """
        if key is None:
            return Collection([data_get(item, value) for item in self.items])
        return {data_get(item, key): data_get(item, value) for item in self.items}

    def key_by(self, key: str|Callable) -> dict:
        """Returns a dict of items by their key value. The last item
            wins when keys repeat.
        """
        return {data_get(item, key): item for item in self.items}

    def group_by(self, key: str|Callable) -> dict[Any, Collection]:
        """Returns a dict of sub-collections grouped by key value,
            preserving item order within each group.
        """
        groups: dict[Any, Collection] = {}
        for item in self.items:
            value = data_get(item, key)
            if value not in groups:
                groups[value] = Collection()
            groups[value].items.append(item)
        return groups

    def unique(self, key: str|Callable = None) -> Collection:
        """Removes duplicates, keeping the first occurrence."""
        seen, items = [], []
        for item in self.items:
            value = item if key is None else data_get(item, key)
            if value not in seen:
                seen.append(value)
                items.append(item)
        return Collection(items)

    def contains(self, key: Any, operator: Any = None, value: Any = _MISSING) -> bool:
        """With one argument, checks for the item (or, for a callable,
            any item passing it). Otherwise compares like where.
        """
        if operator is None and value is _MISSING:
            if callable(key):
                return self.first(key) is not None
            return key in self.items
        return self.where(key, operator, value).is_not_empty()

    def diff(self, other: Iterable) -> Collection:
        """Items not present in other."""
        other = list(other)
        return Collection([item for item in self.items if item not in other])

    def intersect(self, other: Iterable) -> Collection:
        """Items also present in other."""
        other = list(other)
        return Collection([item for item in self.items if item in other])

    def merge(self, other: Iterable) -> Collection:
        return Collection([*self.items, *other])

    def chunk(self, size: int) -> Collection:
        """Splits into sub-collections of size items. Raises TypeError
            or ValueError for invalid size.
        """
        tert(type(size) is int, 'size must be int')
        vert(size > 0, 'size must be positive int')
        return Collection([
            Collection(self.items[i:i+size])
            for i in range(0, len(self.items), size)
        ])

    def reverse(self) -> Collection:
        return Collection(reversed(self.items))

    def sort_by(self, key: str|Callable, descending: bool = False) -> Collection:
        return Collection(sorted(
            self.items, key=lambda item: data_get(item, key), reverse=descending
        ))

    def sort(self, callback: Optional[Callable] = None) -> Collection:
        """Sorts by natural order, or with callback as a comparison
            function returning a negative, zero, or positive int.
        """
        if callback is None:
            return Collection(sorted(self.items))
        return Collection(sorted(self.items, key=cmp_to_key(callback)))

    def only(self, *indexes: int|Iterable[int]) -> Collection:
        """Keeps the items at the given positions, in collection order.
            Accepts positional indexes or one list of them.
        """
        indexes = self._flatten_indexes(indexes)
        return Collection([
            item for index, item in enumerate(self.items) if index in indexes
        ])

    def exclude(self, *indexes: int|Iterable[int]) -> Collection:
        """Drops the items at the given positions. Accepts positional
            indexes or one list of them.
        """
        indexes = self._flatten_indexes(indexes)
        return Collection([
            item for index, item in enumerate(self.items) if index not in indexes
        ])

    @staticmethod
    def _flatten_indexes(indexes: tuple) -> set[int]:
        if len(indexes) == 1 and type(indexes[0]) in (list, tuple, set):
            indexes = indexes[0]
        tert(all([type(i) is int for i in indexes]), 'indexes must be int')
        return set(indexes)

    def reduce(self, callback: Callable, initial: Any = None) -> Any:
        result = initial
        for item in self.items:
            result = callback(result, item)
        return result

    def sum(self, key: str|Callable = None) -> Any:
        if key is None:
            return sum(self.items)
        return sum([data_get(item, key) or 0 for item in self.items])

    def to_list(self) -> list:
        """Returns a list with models converted to dicts."""
        return [
            item.to_dict() if isinstance(item, Model) else
            (dict(item.data) if isinstance(item, Row) else item)
            for item in self.items
        ]

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_list(), default=str, **kwargs)

    def load(self, *names: str, driver: Optional[DriverProtocol] = None,
             **constrained: Callable) -> Collection:
        """Eager load the named relations onto every item, one query
            per relation. Keyword arguments map a relation name to a
            callable that adds constraints to the relation. Return self
            in monad pattern.
        """
        for name in names:
            eager_load(self.items, name, driver)
        for name, constraint in constrained.items():
            eager_load(self.items, name, driver, constraint)
        return self


def eager_load(owners: list[Model], name: str, driver: Optional[DriverProtocol] = None,
               constraint: Optional[Callable] = None) -> None:
    """Load the named relation onto every owner with a single query:
        add_eager_constraints, then get_eager, then match. A dotted
        name loads nested relations one level (one query) at a time;
        already loaded levels are not loaded again. An empty list of
        owners issues no query. Raises ValueError for unknown relation
        names.
    """
    owners = list(owners)
    if len(owners) == 0:
        return

    head, _, rest = name.partition('.')

    if not rest or not all([head in owner.relations for owner in owners]):
        relation = owners[0].relation(head, driver)
        relation.add_eager_constraints(owners)
        if constraint is not None and not rest:
            constraint(relation)
        results = relation.get_eager()
        relation.match(owners, results, head)
        logger.debug('eager loaded %s for %d owners: %d results',
                     head, len(owners), len(results))

    if not rest:
        return

    children = []
    for owner in owners:
        value = owner.relations.get(head)
        if isinstance(value, Collection):
            children.extend(value.items)
        elif value is not None:
            children.append(value)

    eager_load(children, rest, driver, constraint)
