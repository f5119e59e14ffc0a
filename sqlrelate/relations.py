"""
    The four relation types and the helper functions that attach them to
    model classes. Every relation resolves lazily for one owner via
    `get()` and in batch for many owners via `add_eager_constraints`,
    `get_eager`, and `match`, which together issue one query however
    many owners there are.

    Usage:

        Post.comments = has_many(Post, Comment)
        Comment.post = belongs_to(Comment, Post)

        post.comments             # Collection, loaded on first access
        post.comments()           # the HasMany relation
        Post.with_relations('comments').get()
"""


from __future__ import annotations
from .classes import (
    Collection,
    Model,
    QueryBuilder,
    Row,
    data_get,
    eager_load,
)
from .errors import tert, vert, tressa
from .interfaces import DriverProtocol, RelatedCollection, RelatedModel
from .tools import pivot_table_name
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Type
import logging


logger = logging.getLogger('sqlrelate.relations')


def _assign(owner: Any, relation: str, value: Any) -> None:
    if isinstance(owner, dict):
        owner[relation] = value
    else:
        owner.relations[relation] = value


class Relation:
    """Base class for the relation types. Holds the bound owner
        instance, the related model class, the injected driver, and a
        query builder for the related table that accumulates
        constraints.
    """
    many: bool = False
    owner: Model
    related: Type[Model]
    driver: Optional[DriverProtocol]
    query: QueryBuilder
    name: str

    def __init__(self, related: Type[Model], owner: Model,
                 driver: Optional[DriverProtocol] = None, name: str = None) -> None:
        """Initialize the relation. Raises TypeError or ValueError if the
            related class is not a Model subclass with a primary_key or
            if the owner is not a Model instance.
        """
        tert(isinstance(related, type) and issubclass(related, Model),
             'related must be a subclass of Model')
        tert(type(related.primary_key) is str,
             f'{related.__name__}.primary_key must be str')
        vert(len(related.primary_key) > 0,
             f'{related.__name__}.primary_key cannot be empty')
        tert(isinstance(owner, Model), 'owner must be a Model instance')
        tert(name is None or type(name) is str, 'name must be str|None')

        self.related = related
        self.owner = owner
        self.driver = driver if driver is not None else owner.driver
        self.query = QueryBuilder(related, self.driver)
        self.name = name or related.short_name

    @staticmethod
    def key_preconditions(**keys: Optional[str]) -> None:
        for label, key in keys.items():
            tert(key is None or type(key) is str, f'{label} must be str|None')
            vert(key is None or len(key) > 0, f'{label} cannot be empty')

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(owner={type(self.owner).__name__}, ' + \
            f'related={self.related.__name__}, name={self.name!r})'

    # constraints are passed through to the query builder

    def select(self, columns: list[str]|str, *more: str) -> Relation:
        self.query.select(columns, *more)
        return self

    def where(self, column: str, *args) -> Relation:
        self.query.where(column, *args)
        return self

    def or_where(self, column: str, *args) -> Relation:
        self.query.or_where(column, *args)
        return self

    def where_in(self, column: str, values: Iterable) -> Relation:
        self.query.where_in(column, values)
        return self

    def where_not_in(self, column: str, values: Iterable) -> Relation:
        self.query.where_not_in(column, values)
        return self

    def where_null(self, column: str) -> Relation:
        self.query.where_null(column)
        return self

    def where_not_null(self, column: str) -> Relation:
        self.query.where_not_null(column)
        return self

    def order_by(self, column: str, direction: str = 'asc') -> Relation:
        self.query.order_by(column, direction)
        return self

    def limit(self, value: int) -> Relation:
        self.query.limit(value)
        return self

    def take(self, value: int) -> Relation:
        return self.limit(value)

    def offset(self, value: int) -> Relation:
        self.query.offset(value)
        return self

    def skip(self, value: int) -> Relation:
        return self.offset(value)

    def get_query(self) -> Optional[QueryBuilder]:
        """Returns a copy of the query constrained to the bound owner,
            or None when the owner lacks the key value.
        """
        raise NotImplementedError()

    def get(self) -> Any:
        """Resolve the relation for the bound owner."""
        raise NotImplementedError()

    def get_results(self) -> Any:
        return self.get()

    def add_eager_constraints(self, owners: list[Model]) -> None:
        """Constrain the query to the keys of all the owners."""
        raise NotImplementedError()

    def get_eager(self) -> Collection:
        """Run the eager query and hydrate every row."""
        return self.hydrate(self.query.rows())

    def match(self, owners: list[Model], results: Collection, relation: str) -> None:
        """Assign the results to each owner under the relation name."""
        raise NotImplementedError()

    def hydrate(self, rows: list[dict]) -> Collection:
        return Collection([self.related.hydrate(row, self.driver) for row in rows])

    def constrain_keys(self, column: str, owners: list[Model], key: str) -> None:
        """Add `column IN (...)` over the distinct non-null key values of
            the owners. When there are none, add a pair of clauses that
            can never both be true so the query returns nothing.
        """
        keys = []
        for owner in owners:
            value = data_get(owner, key)
            if value is not None and value not in keys:
                keys.append(value)

        if len(keys) > 0:
            self.query.where_in(column, keys)
        else:
            self.query.where(column, '=', None).where(column, '!=', None)

    def key_column(self) -> str:
        return self.related.primary_key

    def first(self) -> Optional[Model]:
        """Returns the first related model or None."""
        query = self.get_query()
        if query is None:
            return None
        return self.hydrate(query.limit(1).rows()).first()

    def find(self, id: Any) -> Optional[Model]:
        """Returns the related model with the given primary key or None."""
        query = self.get_query()
        if query is None:
            return None
        return self.hydrate(query.where(self.key_column(), id).limit(1).rows()).first()

    def count(self) -> int:
        query = self.get_query()
        if query is None:
            return 0
        return query.count()

    def exists(self) -> bool:
        return self.count() > 0

    @staticmethod
    def wrap(value: Optional[Model], wrapper: Type[Model],
             relation: Callable) -> RelatedModel:
        """Wrap a resolved to-one value so that calling it returns the
            relation. The wrapper shares the attributes and relations
            dicts of the model it wraps and is falsy when empty.
        """
        model = wrapper()
        if value is not None:
            model.__dict__.update(value.__dict__)
        model._relation = relation
        return model

    @classmethod
    def create_property(cls, related: Type[Model],
                        factory: Callable[[Model, Optional[DriverProtocol], str], Relation]
                        ) -> RelationProperty:
        """Creates a property that resolves the relation on first access
            and caches the value in `instance.relations`. The value is
            callable and returns a fresh relation. Setting the property
            stores a resolved value; raises TypeError if the value is not
            the related type.
        """
        many = cls.many

        class RelatedModels(Collection):
            def __call__(self) -> Relation:
                return self._relation()

        RelatedModels.__name__ = f'({cls.__name__}){related.__name__}'

        class RelatedWrapped(related):
            table = related.table
            short_name = related.short_name
            foreign_key = related.foreign_key

            def __call__(self) -> Relation:
                return self._relation()

            def __bool__(self) -> bool:
                return len(self.attributes.keys()) > 0

            def __eq__(self, other) -> bool:
                return isinstance(other, related) and hash(self) == hash(other)

            __hash__ = related.__hash__

        RelatedWrapped.__name__ = f'({cls.__name__}){related.__name__}'

        def getter(self: Model) -> RelatedModel|RelatedCollection:
            """The related model(s), loaded on first access. To-many
                values are a callable Collection. A to-one value is a
                callable wrapper of the related model; when nothing is
                related it is an empty wrapper that is falsy but not
                None, so test it with `if not comment.post`. The raw
                value, possibly None, is `instance.relations[name]`.
            """
            name = prop.get_name(type(self))
            if name not in self.relations:
                self.relations[name] = prop.make_relation(self).get_results()

            relation = lambda: prop.make_relation(self)
            value = self.relations[name]

            if many:
                models = RelatedModels()
                if value is not None:
                    models.items = value.items
                models._relation = relation
                return models

            return cls.wrap(value, RelatedWrapped, relation)

        def setter(self: Model, value: Any) -> None:
            """Store an already resolved value. Raises TypeError if the
                value is not the related type.
            """
            name = prop.get_name(type(self))
            if many:
                tert(type(value) in (list, tuple) or isinstance(value, Collection),
                     f'value must be list|tuple|Collection of {related.__name__}')
                tert(all([isinstance(v, related) for v in value]),
                     f'value must be list|tuple|Collection of {related.__name__}')
                self.relations[name] = Collection(value)
            else:
                tert(value is None or isinstance(value, related),
                     f'value must be {related.__name__}|None')
                self.relations[name] = value

        prop = RelationProperty(factory, getter, setter)
        return prop


class RelationProperty(property):
    """Property exposing a relation on a model class. Knows how to build
        a fresh relation for an instance; the eager loader uses this
        through `Model.relation`.
    """
    factory: Callable[[Model, Optional[DriverProtocol], str], Relation]
    name: Optional[str]

    def __init__(self, factory: Callable, fget: Callable, fset: Callable) -> None:
        super().__init__(fget, fset, doc=fget.__doc__)
        self.factory = factory
        self.name = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def get_name(self, cls: type) -> str:
        """Returns the attribute name of the property. Properties
            assigned after class creation are looked up on the class.
            Raises UsageError if the property is not on the class.
        """
        if self.name is None:
            for klass in cls.__mro__:
                for key, value in vars(klass).items():
                    if value is self:
                        self.name = key
                        break
                if self.name is not None:
                    break
        tressa(self.name is not None,
               f'relation property is not assigned on {cls.__name__}')
        return self.name

    def make_relation(self, instance: Model,
                      driver: Optional[DriverProtocol] = None) -> Relation:
        return self.factory(instance, driver, self.get_name(type(instance)))


class BelongsTo(Relation):
    """The owner holds a foreign key referencing the related model,
        e.g. a comment belongs to a post through comment.post_id.
    """
    foreign_key: str
    owner_key: str

    def __init__(self, related: Type[Model], owner: Model,
                 foreign_key: str = None, owner_key: str = None, **kwargs) -> None:
        self.key_preconditions(foreign_key=foreign_key, owner_key=owner_key)
        super().__init__(related, owner, **kwargs)
        self.foreign_key = foreign_key or related.foreign_key
        self.owner_key = owner_key or related.primary_key

    def get_query(self) -> Optional[QueryBuilder]:
        value = self.owner.get(self.foreign_key)
        if value is None:
            return None
        return self.query.clone().where(self.owner_key, value)

    def get(self) -> Optional[Model]:
        """Returns the related model or None. Issues no query when the
            owner's foreign key is null.
        """
        return self.first()

    def add_eager_constraints(self, owners: list[Model]) -> None:
        self.constrain_keys(self.owner_key, owners, self.foreign_key)

    def match(self, owners: list[Model], results: Collection, relation: str) -> None:
        dictionary = results.key_by(self.owner_key)
        for owner in owners:
            _assign(owner, relation, dictionary.get(data_get(owner, self.foreign_key)))

    def associate(self, model: Optional[Model]) -> Model:
        """Point the owner's foreign key at the model (or null) and
            record the model as the resolved relation. Returns the
            owner; it is not saved.
        """
        tert(model is None or isinstance(model, self.related),
             f'model must be {self.related.__name__}|None')
        self.owner.set(
            self.foreign_key,
            model.get(self.owner_key) if model is not None else None
        )
        self.owner.relations[self.name] = model
        return self.owner

    def dissociate(self) -> Model:
        """Null the owner's foreign key and forget the resolved relation.
            Returns the owner; it is not saved.
        """
        self.owner.set(self.foreign_key, None)
        self.owner.relations.pop(self.name, None)
        return self.owner


class HasOne(Relation):
    """The related model holds a foreign key referencing the owner,
        e.g. a user has one profile through profile.user_id.
    """
    foreign_key: str
    local_key: str

    def __init__(self, related: Type[Model], owner: Model,
                 foreign_key: str = None, local_key: str = None, **kwargs) -> None:
        self.key_preconditions(foreign_key=foreign_key, local_key=local_key)
        super().__init__(related, owner, **kwargs)
        self.foreign_key = foreign_key or type(owner).foreign_key
        self.local_key = local_key or owner.primary_key

    def get_query(self) -> Optional[QueryBuilder]:
        value = self.owner.get(self.local_key)
        if value is None:
            return None
        return self.query.clone().where(self.foreign_key, value)

    def get(self) -> Optional[Model]:
        return self.first()

    def add_eager_constraints(self, owners: list[Model]) -> None:
        self.constrain_keys(self.foreign_key, owners, self.local_key)

    def match(self, owners: list[Model], results: Collection, relation: str) -> None:
        dictionary = results.key_by(self.foreign_key)
        for owner in owners:
            _assign(owner, relation, dictionary.get(data_get(owner, self.local_key)))

    def owner_key_value(self) -> Any:
        value = self.owner.get(self.local_key)
        tressa(value is not None,
               f'cannot relate to {type(self.owner).__name__} without {self.local_key}')
        return value

    def make(self, attributes: dict = {}) -> Model:
        """Returns an unsaved related model with the foreign key set."""
        model = self.related(attributes, driver=self.driver)
        model.set(self.foreign_key, self.owner_key_value())
        return model

    def create(self, attributes: dict = {}) -> Model:
        """Set the foreign key on the attributes and insert the related
            model. Raises UsageError if the owner has no key value.
        """
        tert(isinstance(attributes, dict), 'attributes must be dict')
        data = {**attributes, self.foreign_key: self.owner_key_value()}
        return self.related.insert(data, driver=self.driver)

    def save(self, model: Model) -> Model:
        """Set the foreign key on the model, then insert or update it.
            Raises TypeError for a model of the wrong type.
        """
        tert(isinstance(model, self.related), f'model must be {self.related.__name__}')
        model.set(self.foreign_key, self.owner_key_value())
        if model.driver is None:
            model.driver = self.driver
        return model.save()


class HasMany(HasOne):
    """As HasOne, but any number of related models, e.g. a post has
        many comments through comment.post_id.
    """
    many: bool = True

    def get(self) -> Collection:
        """Returns a Collection of related models, empty without a query
            when the owner lacks its key value.
        """
        query = self.get_query()
        if query is None:
            return Collection()
        return self.hydrate(query.rows())

    def match(self, owners: list[Model], results: Collection, relation: str) -> None:
        groups = results.group_by(self.foreign_key)
        for owner in owners:
            _assign(owner, relation, groups.get(data_get(owner, self.local_key), Collection()))

    def create_many(self, records: Iterable[dict]) -> Collection:
        return Collection([self.create(record) for record in records])

    def save_many(self, models: Iterable[Model]) -> Collection:
        return Collection([self.save(model) for model in models])


class BelongsToMany(Relation):
    """Many-to-many relation through a link table holding one foreign
        key per side, e.g. posts and tags through post_tag. Link table
        columns are selected with `pivot_prefix` aliases and split into
        `model.pivot` on hydration.
    """
    many: bool = True
    pivot_prefix: str = 'pivot_'
    timestamp_format: str = '%Y-%m-%d %H:%M:%S'
    table: str
    foreign_pivot_key: str
    related_pivot_key: str
    parent_key: str
    related_key: str
    pivot_columns: list[str]
    timestamps: bool

    def __init__(self, related: Type[Model], owner: Model, table: str = None,
                 foreign_pivot_key: str = None, related_pivot_key: str = None,
                 parent_key: str = None, related_key: str = None,
                 pivot_columns: Iterable[str] = (), timestamps: bool = False,
                 **kwargs) -> None:
        self.key_preconditions(
            table=table, foreign_pivot_key=foreign_pivot_key,
            related_pivot_key=related_pivot_key, parent_key=parent_key,
            related_key=related_key,
        )
        super().__init__(related, owner, **kwargs)
        self.table = table or pivot_table_name(type(owner).short_name, related.short_name)
        self.foreign_pivot_key = foreign_pivot_key or type(owner).foreign_key
        self.related_pivot_key = related_pivot_key or related.foreign_key
        self.parent_key = parent_key or owner.primary_key
        self.related_key = related_key or related.primary_key
        self.pivot_columns = []
        self.timestamps = False
        self.with_pivot(*pivot_columns)
        if timestamps:
            self.with_timestamps()

    def with_pivot(self, *columns: str) -> BelongsToMany:
        """Also select the given link table columns."""
        tert(all([type(c) is str for c in columns]), 'pivot columns must be str')
        for column in columns:
            if column not in self.pivot_columns:
                self.pivot_columns.append(column)
        return self

    def with_timestamps(self) -> BelongsToMany:
        """Select and maintain created_at and updated_at on the link
            table.
        """
        self.timestamps = True
        return self.with_pivot('created_at', 'updated_at')

    def qualify(self, column: str) -> str:
        if '.' in column:
            return column
        return f'{self.related.table}.{column}'

    def key_column(self) -> str:
        return self.qualify(self.related_key)

    def pivot_column(self, column: str) -> str:
        return f'{self.table}.{column}'

    def base_query(self) -> QueryBuilder:
        """Returns the join of the related table and the link table
            selecting the prefixed link columns.
        """
        columns = [
            f'{self.related.table}.*' if c == '*' else self.qualify(c)
            for c in self.query.columns
        ]
        pivots = []
        for column in [self.foreign_pivot_key, self.related_pivot_key, *self.pivot_columns]:
            if column not in pivots:
                pivots.append(column)
        columns.extend([
            f'{self.pivot_column(c)} AS {self.pivot_prefix}{c}' for c in pivots
        ])

        return QueryBuilder(self.related, self.driver).select(columns).join(
            self.table,
            self.qualify(self.related_key),
            '=',
            self.pivot_column(self.related_pivot_key),
        )

    def merge_constraints(self, query: QueryBuilder) -> QueryBuilder:
        """Append the accumulated constraints to the join query with
            unqualified columns qualified by the related table.
        """
        query.wheres.extend([
            replace(w, column=self.qualify(w.column)) for w in self.query.wheres
        ])
        query.orders.extend([(self.qualify(c), d) for c, d in self.query.orders])
        query.limit_value = self.query.limit_value
        query.offset_value = self.query.offset_value
        return query

    def get_query(self) -> Optional[QueryBuilder]:
        value = self.owner.get(self.parent_key)
        if value is None:
            return None
        query = self.base_query().where(self.pivot_column(self.foreign_pivot_key), value)
        return self.merge_constraints(query)

    def get(self) -> Collection:
        """Returns a Collection of related models with their pivot data,
            empty without a query when the owner lacks its key value.
        """
        query = self.get_query()
        if query is None:
            return Collection()
        return self.hydrate(query.rows())

    def add_eager_constraints(self, owners: list[Model]) -> None:
        self.constrain_keys(self.pivot_column(self.foreign_pivot_key), owners, self.parent_key)

    def get_eager(self) -> Collection:
        return self.hydrate(self.merge_constraints(self.base_query()).rows())

    def match(self, owners: list[Model], results: Collection, relation: str) -> None:
        groups = results.group_by(lambda model: model.pivot.get(self.foreign_pivot_key))
        for owner in owners:
            _assign(owner, relation, groups.get(data_get(owner, self.parent_key), Collection()))

    def hydrate(self, rows: list[dict]) -> Collection:
        """Hydrate rows, moving the prefixed link columns into pivot."""
        models = []
        for row in rows:
            attributes, pivot = {}, {}
            for key, value in row.items():
                if key.startswith(self.pivot_prefix):
                    pivot[key[len(self.pivot_prefix):]] = value
                else:
                    attributes[key] = value
            model = self.related.hydrate(attributes, self.driver)
            model.pivot = Row(data=pivot)
            models.append(model)
        return Collection(models)

    def pivot_query(self) -> QueryBuilder:
        return QueryBuilder(self.table, self.driver)

    def parent_key_value(self) -> Any:
        value = self.owner.get(self.parent_key)
        tressa(value is not None,
               f'cannot modify {self.table} for {type(self.owner).__name__} ' +
               f'without {self.parent_key}')
        return value

    def parse_ids(self, ids: Any) -> list:
        """Normalize an id, model, or iterable of either into a list of
            related key values.
        """
        if isinstance(ids, Model):
            return [ids.get(self.related_key)]
        if type(ids) in (list, tuple, set) or isinstance(ids, Collection):
            return [i.get(self.related_key) if isinstance(i, Model) else i for i in ids]
        return [ids]

    def timestamp(self) -> str:
        return datetime.now().strftime(self.timestamp_format)

    def current_ids(self) -> list:
        return self.get().pluck(self.related_key).unique().all()

    def attach(self, ids: Any, attributes: dict = {}) -> None:
        """Insert one link row per id with the extra attributes. Raises
            UsageError if the owner has no key value.
        """
        tert(isinstance(attributes, dict), 'attributes must be dict')
        parent = self.parent_key_value()
        for id in self.parse_ids(ids):
            record = {self.foreign_pivot_key: parent, self.related_pivot_key: id}
            if self.timestamps:
                now = self.timestamp()
                record['created_at'] = now
                record['updated_at'] = now
            record.update(attributes)
            self.pivot_query().insert(record)
        logger.debug('attached %s to %s %s', ids, self.table, parent)

    def detach(self, ids: Any = None) -> int:
        """Delete the owner's link rows for the ids, or all of them when
            ids is None. Returns the number of rows deleted.
        """
        query = self.pivot_query().where(self.foreign_pivot_key, self.parent_key_value())
        if ids is not None:
            ids = self.parse_ids(ids)
            if len(ids) == 0:
                return 0
            query.where_in(self.related_pivot_key, ids)
        return query.delete()

    def sync(self, ids: Any) -> dict[str, list]:
        """Make the attached set equal to ids: detach what is not listed
            and attach what is missing. Returns the attached, detached,
            and updated ids.
        """
        desired = []
        for id in self.parse_ids(ids):
            if id not in desired:
                desired.append(id)
        current = self.current_ids()

        detach = [id for id in current if id not in desired]
        attach = [id for id in desired if id not in current]

        if len(detach) > 0:
            self.detach(detach)
        if len(attach) > 0:
            self.attach(attach)

        logger.debug('synced %s: attached %s, detached %s', self.table, attach, detach)
        return {'attached': attach, 'detached': detach, 'updated': []}

    def toggle(self, ids: Any) -> dict[str, list]:
        """Detach the listed ids that are attached and attach the rest.
            Returns the attached and detached ids.
        """
        toggled = []
        for id in self.parse_ids(ids):
            if id not in toggled:
                toggled.append(id)
        current = self.current_ids()

        detach = [id for id in toggled if id in current]
        attach = [id for id in toggled if id not in current]

        if len(detach) > 0:
            self.detach(detach)
        if len(attach) > 0:
            self.attach(attach)

        return {'attached': attach, 'detached': detach}

    def update_existing_pivot(self, id: Any, attributes: dict) -> int:
        """Update the extra columns of the link row for id. Returns the
            number of rows updated.
        """
        tert(isinstance(attributes, dict), 'attributes must be dict')
        values = dict(attributes)
        if self.timestamps:
            values['updated_at'] = self.timestamp()
        return self.pivot_query().where(
            self.foreign_pivot_key, self.parent_key_value()
        ).where(self.related_pivot_key, id).update(values)


def _related_precondition(cls: Type[Model], other: Type[Model]) -> None:
    tert(isinstance(cls, type) and issubclass(cls, Model), 'cls must be a subclass of Model')
    tert(isinstance(other, type) and issubclass(other, Model),
         'related model must be a subclass of Model')

def has_one(cls: Type[Model], owned_model: Type[Model],
            foreign_key: str = None, local_key: str = None) -> RelationProperty:
    """Creates a HasOne relation property. Usage syntax is like
        `User.profile = has_one(User, Profile)`. If the foreign key column
        on the Profile.table table is not user_id (cls.foreign_key), then
        it can be specified.
    """
    _related_precondition(cls, owned_model)
    foreign_key = foreign_key or cls.foreign_key
    local_key = local_key or cls.primary_key

    return HasOne.create_property(
        owned_model,
        lambda owner, driver, name: HasOne(
            owned_model, owner, foreign_key, local_key, driver=driver, name=name
        )
    )

def has_many(cls: Type[Model], owned_model: Type[Model],
             foreign_key: str = None, local_key: str = None) -> RelationProperty:
    """Creates a HasMany relation property. Usage syntax is like
        `Post.comments = has_many(Post, Comment)`. If the foreign key
        column on the Comment.table table is not post_id
        (cls.foreign_key), then it can be specified.
    """
    _related_precondition(cls, owned_model)
    foreign_key = foreign_key or cls.foreign_key
    local_key = local_key or cls.primary_key

    return HasMany.create_property(
        owned_model,
        lambda owner, driver, name: HasMany(
            owned_model, owner, foreign_key, local_key, driver=driver, name=name
        )
    )

def belongs_to(cls: Type[Model], owner_model: Type[Model],
               foreign_key: str = None, owner_key: str = None) -> RelationProperty:
    """Creates a BelongsTo relation property. Usage syntax is like
        `Comment.post = belongs_to(Comment, Post)`. If the foreign key
        column on the Comment.table table is not post_id
        (owner_model.foreign_key), then it can be specified.
    """
    _related_precondition(cls, owner_model)
    foreign_key = foreign_key or owner_model.foreign_key
    owner_key = owner_key or owner_model.primary_key

    return BelongsTo.create_property(
        owner_model,
        lambda owner, driver, name: BelongsTo(
            owner_model, owner, foreign_key, owner_key, driver=driver, name=name
        )
    )

def belongs_to_many(cls: Type[Model], other_model: Type[Model],
                    table: str = None, foreign_pivot_key: str = None,
                    related_pivot_key: str = None, pivot_columns: Iterable[str] = (),
                    timestamps: bool = False) -> RelationProperty:
    """Creates a BelongsToMany relation property. Usage syntax is like
        `Post.tags = belongs_to_many(Post, Tag)`. The link table defaults
        to the sorted short names joined by '_' (post_tag) with the
        columns cls.foreign_key and other_model.foreign_key.
    """
    _related_precondition(cls, other_model)
    table = table or pivot_table_name(cls.short_name, other_model.short_name)
    foreign_pivot_key = foreign_pivot_key or cls.foreign_key
    related_pivot_key = related_pivot_key or other_model.foreign_key
    pivot_columns = tuple(pivot_columns)

    return BelongsToMany.create_property(
        other_model,
        lambda owner, driver, name: BelongsToMany(
            other_model, owner, table, foreign_pivot_key, related_pivot_key,
            pivot_columns=pivot_columns, timestamps=timestamps,
            driver=driver, name=name,
        )
    )
