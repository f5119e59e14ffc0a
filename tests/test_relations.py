from __future__ import annotations
from context import classes, errors, interfaces, relations
import re
import unittest


class RecordingDriver(classes.SqliteDriver):
    """Sqlite driver that keeps every statement it executes."""
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.statements = []

    def query(self, sql: str, bindings=()):
        self.statements.append((sql, list(bindings)))
        return super().query(sql, bindings)


class User(classes.Model):
    columns: tuple = ('id', 'name')
    profile: interfaces.RelatedModel
    posts: interfaces.RelatedCollection


class Profile(classes.Model):
    columns: tuple = ('id', 'user_id', 'bio')
    user: interfaces.RelatedModel


class Post(classes.Model):
    columns: tuple = ('id', 'user_id', 'title')
    user: interfaces.RelatedModel
    comments: interfaces.RelatedCollection
    tags: interfaces.RelatedCollection
    timed_tags: interfaces.RelatedCollection


class Comment(classes.Model):
    columns: tuple = ('id', 'post_id', 'user_id', 'body')
    post: interfaces.RelatedModel
    user: interfaces.RelatedModel


class Tag(classes.Model):
    columns: tuple = ('id', 'name')
    posts: interfaces.RelatedCollection


User.profile = relations.has_one(User, Profile)
User.posts = relations.has_many(User, Post)
Profile.user = relations.belongs_to(Profile, User)
Post.user = relations.belongs_to(Post, User)
Post.comments = relations.has_many(Post, Comment)
Post.tags = relations.belongs_to_many(Post, Tag, pivot_columns=('note',))
Post.timed_tags = relations.belongs_to_many(Post, Tag, timestamps=True)
Comment.post = relations.belongs_to(Comment, Post)
Comment.user = relations.belongs_to(Comment, User)
Tag.posts = relations.belongs_to_many(Tag, Post)


class TestRelations(unittest.TestCase):
    driver: RecordingDriver = None
    models: tuple = (User, Profile, Post, Comment, Tag)

    def setUp(self) -> None:
        """Set up an in-memory test database with posts 1-3, comments
            10 and 11 on post 1, and comment 12 on post 2.
        """
        self.driver = RecordingDriver(':memory:')
        for model in self.models:
            model.driver = self.driver

        self.driver.query('create table users (id integer primary key, name text)')
        self.driver.query('create table profiles (id integer primary key, ' +
            'user_id integer, bio text)')
        self.driver.query('create table posts (id integer primary key, ' +
            'user_id integer, title text)')
        self.driver.query('create table comments (id integer primary key, ' +
            'post_id integer, user_id integer, body text)')
        self.driver.query('create table tags (id integer primary key, name text)')
        self.driver.query('create table post_tag (id integer primary key, ' +
            'post_id integer, tag_id integer, note text, created_at text, ' +
            'updated_at text)')

        User.insert({'id': 1, 'name': 'ada'})
        User.insert({'id': 2, 'name': 'bob'})
        Profile.insert({'id': 1, 'user_id': 1, 'bio': 'math'})
        Post.insert({'id': 1, 'user_id': 1, 'title': 'first'})
        Post.insert({'id': 2, 'user_id': 2, 'title': 'second'})
        Post.insert({'id': 3, 'user_id': 1, 'title': 'third'})
        Comment.insert({'id': 10, 'post_id': 1, 'user_id': 2, 'body': 'a'})
        Comment.insert({'id': 11, 'post_id': 1, 'user_id': 1, 'body': 'b'})
        Comment.insert({'id': 12, 'post_id': 2, 'user_id': 2, 'body': 'c'})
        for id, name in ((1, 'red'), (2, 'green'), (3, 'blue')):
            Tag.insert({'id': id, 'name': name})

        self.driver.statements.clear()
        return super().setUp()

    def tearDown(self) -> None:
        """Close the database."""
        for model in self.models:
            model.driver = None
        self.driver.close()
        return super().tearDown()

    def queries(self) -> list[tuple[str, list]]:
        statements = list(self.driver.statements)
        self.driver.statements.clear()
        return statements

    def posts(self) -> classes.Collection:
        posts = Post.query().order_by('id').get()
        self.driver.statements.clear()
        return posts

    # general tests
    def test_relations_contains_correct_classes_and_functions(self):
        assert hasattr(relations, 'Relation')
        assert hasattr(relations, 'BelongsTo')
        assert hasattr(relations, 'HasOne')
        assert hasattr(relations, 'HasMany')
        assert hasattr(relations, 'BelongsToMany')
        assert hasattr(relations, 'RelationProperty')
        assert issubclass(relations.HasMany, relations.HasOne)
        for name in ('has_one', 'has_many', 'belongs_to', 'belongs_to_many'):
            assert callable(getattr(relations, name))
        assert isinstance(Post.comments, relations.RelationProperty)

    def test_relations_implement_RelationProtocol(self):
        post = Post.find(1)
        for name in ('user', 'comments', 'tags'):
            assert isinstance(post.relation(name), interfaces.RelationProtocol)

    def test_relation_construction_fails_for_misconfigured_models(self):
        class Keyless(classes.Model):
            primary_key = ''

        post = Post.find(1)
        with self.assertRaises(ValueError):
            relations.HasMany(Keyless, post)
        with self.assertRaises(TypeError):
            relations.HasMany(dict, post)
        with self.assertRaises(TypeError):
            relations.BelongsTo(Post, post, foreign_key=3)
        with self.assertRaises(TypeError):
            relations.has_many(Post, object)

    # eager loading tests
    def test_eager_load_has_many_issues_one_query(self):
        posts = self.posts()
        posts.load('comments')

        statements = self.queries()
        assert len(statements) == 1
        sql, bindings = statements[0]
        assert sql == 'SELECT * FROM comments WHERE post_id IN (?,?,?)'
        assert bindings == [1, 2, 3]

        assert posts[0].relations['comments'].pluck('id').all() == [10, 11]
        assert posts[1].relations['comments'].pluck('id').all() == [12]
        assert isinstance(posts[2].relations['comments'], classes.Collection)
        assert posts[2].relations['comments'].is_empty()

    def test_eager_load_empty_batch_issues_no_query(self):
        classes.Collection().load('comments')
        classes.eager_load([], 'comments.user')
        assert self.queries() == []

    def test_eager_load_all_null_keys_returns_nothing(self):
        orphans = classes.Collection([
            Comment({'id': 20, 'post_id': None}),
            Comment({'id': 21}),
        ])
        orphans.load('post')

        statements = self.queries()
        assert len(statements) == 1
        assert statements[0] == ('SELECT * FROM posts WHERE id = ? AND id != ?', [None, None])
        assert orphans[0].relations['post'] is None
        assert orphans[1].relations['post'] is None

    def test_eager_load_preserves_owner_order(self):
        first, second, third = self.posts()
        owners = classes.Collection([third, first, second])
        owners.load('comments')

        assert [p.id for p in owners] == [3, 1, 2]
        assert owners[0].relations['comments'].is_empty()
        assert owners[1].relations['comments'].pluck('id').all() == [10, 11]
        assert owners[2].relations['comments'].pluck('id').all() == [12]

    def test_eager_load_belongs_to_deduplicates_keys(self):
        comments = Comment.query().order_by('id').get()
        self.queries()
        comments.load('post')

        statements = self.queries()
        assert statements == [('SELECT * FROM posts WHERE id IN (?,?)', [1, 2])]
        assert [c.relations['post'].id for c in comments] == [1, 1, 2]

    def test_eager_load_has_one(self):
        users = User.query().order_by('id').get()
        self.queries()
        users.load('profile')

        assert len(self.queries()) == 1
        assert users[0].relations['profile'].bio == 'math'
        assert users[1].relations['profile'] is None

    def test_eager_load_belongs_to_many_groups_by_pivot_key(self):
        Post.find(1).tags().attach([1, 2], {'note': 'x'})
        Post.find(2).tags().attach(3)
        posts = self.posts()
        posts.load('tags')

        statements = self.queries()
        assert len(statements) == 1
        sql, bindings = statements[0]
        assert 'INNER JOIN post_tag ON tags.id = post_tag.tag_id' in sql
        assert 'WHERE post_tag.post_id IN (?,?,?)' in sql
        assert bindings == [1, 2, 3]

        assert sorted(posts[0].relations['tags'].pluck('id').all()) == [1, 2]
        assert posts[0].relations['tags'][0].pivot.get('note') == 'x'
        assert posts[1].relations['tags'].pluck('id').all() == [3]
        assert posts[2].relations['tags'].is_empty()

    def test_eager_load_with_constraints(self):
        posts = self.posts()
        posts.load(comments=lambda relation: relation.where('body', '!=', 'a'))

        sql, bindings = self.queries()[0]
        assert sql == 'SELECT * FROM comments WHERE post_id IN (?,?,?) AND body != ?'
        assert bindings == [1, 2, 3, 'a']
        assert posts[0].relations['comments'].pluck('id').all() == [11]

    def test_eager_load_nested_relations_one_query_per_level(self):
        posts = self.posts()
        posts.load('comments.user')

        assert len(self.queries()) == 2
        comments = posts[0].relations['comments']
        assert [c.relations['user'].name for c in comments] == ['bob', 'ada']

        posts.load('comments.post')
        assert len(self.queries()) == 1

    def test_with_relations_loads_on_get(self):
        posts = Post.with_relations('user', 'comments').order_by('id').get()
        assert len(self.queries()) == 3
        assert posts[1].relations['user'].name == 'bob'
        assert posts[1].relations['comments'].pluck('id').all() == [12]

    def test_model_load_single_instance(self):
        post = Post.find(2).load('comments')
        self.queries()
        assert post.comments.pluck('id').all() == [12]
        assert self.queries() == []

    def test_eager_load_logs_at_debug(self):
        with self.assertLogs('sqlrelate.classes', level='DEBUG') as logs:
            self.posts().load('comments')
        assert any(['eager loaded comments for 3 owners: 3 results' in line
                    for line in logs.output])

    def test_eager_load_raises_for_unknown_relation(self):
        with self.assertRaises(ValueError):
            self.posts().load('nothing')

    # lazy access tests
    def test_has_many_property_loads_once(self):
        post = Post.find(1)
        self.queries()

        comments = post.comments
        assert len(comments) == 2
        assert comments[0].body == 'a'
        assert len(self.queries()) == 1

        assert len(post.comments) == 2
        assert self.queries() == []

        relation = post.comments()
        assert isinstance(relation, relations.HasMany)
        assert relation.owner is post
        assert relation.count() == 2

    def test_belongs_to_property_wraps_related_model(self):
        comment = Comment.find(12)
        post = comment.post
        assert post
        assert post.title == 'second'
        assert post == Post.find(2)
        assert isinstance(post, Post)
        assert isinstance(comment.post(), relations.BelongsTo)

    def test_to_one_property_is_falsy_without_match_or_key(self):
        orphan = Comment({'id': 40, 'post_id': None})
        self.queries()
        assert not orphan.post
        assert orphan.post is not None
        assert orphan.relations['post'] is None
        assert self.queries() == []
        assert isinstance(orphan.post(), relations.BelongsTo)

        user = User.find(2)
        assert not user.profile
        assert user.profile is not None
        assert user.relations['profile'] is None

        assert 'falsy but not' in Comment.post.__doc__
        assert 'relations[name]' in Comment.post.__doc__

    def test_to_many_property_is_empty_without_key(self):
        post = Post({'title': 'draft'})
        assert len(post.comments) == 0
        assert self.queries() == []

    def test_property_setter_stores_resolved_value(self):
        post = Post.find(3)
        post.comments = [Comment({'id': 1})]
        assert post.comments.pluck('id').all() == [1]
        with self.assertRaises(TypeError):
            post.comments = [Tag()]
        with self.assertRaises(TypeError):
            Comment().post = Tag()

    def test_relation_get_does_not_accumulate_constraints(self):
        relation = Post.find(1).comments()
        sql = relation.get_query().to_sql()
        relation.get()
        relation.get()
        assert relation.get_query().to_sql() == sql == \
            'SELECT * FROM comments WHERE post_id = ?'

    def test_relation_query_helpers(self):
        post = Post.find(1)
        assert post.comments().where('body', 'b').first().id == 11
        assert post.comments().find(10).body == 'a'
        assert post.comments().find(12) is None
        assert post.comments().exists()
        assert Post.find(3).comments().exists() is False
        assert post.comments().order_by('id', 'desc').get().pluck('id').all() == [11, 10]

    # BelongsTo tests
    def test_associate_and_dissociate(self):
        comment = Comment.find(10)
        post = Post.find(2)

        assert comment.post().associate(post) is comment
        assert comment.post_id == 2
        assert comment.relations['post'] is post
        self.queries()
        assert comment.post.title == 'second'
        assert self.queries() == []

        comment.save()
        assert Comment.find(10).post_id == 2

        comment.post().dissociate()
        assert comment.post_id is None
        assert 'post' not in comment.relations

        with self.assertRaises(TypeError):
            comment.post().associate(Tag())

    # HasOne and HasMany tests
    def test_has_one_create_make_and_save(self):
        user = User.find(2)
        profile = user.profile().create({'bio': 'chess'})
        assert profile.exists
        assert profile.user_id == 2
        assert User.find(2).profile.bio == 'chess'

        made = user.profile().make({'bio': 'draft'})
        assert made.user_id == 2
        assert made.exists is False

        other = Profile({'bio': 'moved'})
        user.profile().save(other)
        assert other.exists
        assert Profile.find(other.id).user_id == 2

    def test_has_many_create_many_and_save_many(self):
        post = Post.find(3)
        created = post.comments().create_many([{'body': 'x'}, {'body': 'y'}])
        assert created.pluck('post_id').all() == [3, 3]

        moved = Comment.find(10)
        post.comments().save_many([moved])
        assert Comment.find(10).post_id == 3
        assert post.comments().count() == 3

    def test_create_without_owner_key_raises_usage_error(self):
        with self.assertRaises(errors.UsageError):
            Post({'title': 'draft'}).comments().create({'body': 'x'})

    # BelongsToMany tests
    def test_belongs_to_many_get_renders_join_with_pivot_aliases(self):
        post = Post.find(1)
        relation = post.tags().where('name', 'red').order_by('name')
        assert relation.get_query().to_sql() == 'SELECT tags.*, ' + \
            'post_tag.post_id AS pivot_post_id, post_tag.tag_id AS pivot_tag_id, ' + \
            'post_tag.note AS pivot_note FROM tags INNER JOIN post_tag ON ' + \
            'tags.id = post_tag.tag_id WHERE post_tag.post_id = ? AND ' + \
            'tags.name = ? ORDER BY tags.name ASC'
        assert relation.get_query().get_bindings() == [1, 'red']

    def test_belongs_to_many_attach_and_pivot_data(self):
        post = Post.find(1)
        post.tags().attach(2, {'note': 'pinned'})
        post.tags().attach(Tag.find(3))

        tags = post.tags().order_by('id').get()
        assert tags.pluck('id').all() == [2, 3]
        assert isinstance(tags[0].pivot, classes.Row)
        assert tags[0].pivot.data == {'post_id': 1, 'tag_id': 2, 'note': 'pinned'}
        assert 'pivot_note' not in tags[0].attributes
        assert post.tags().count() == 2
        assert post.tags().find(3).name == 'blue'
        assert Tag.find(2).posts.pluck('id').all() == [1]

    def test_belongs_to_many_timestamps(self):
        post = Post.find(1)
        post.timed_tags().attach(1)
        tag = post.timed_tags().first()
        pattern = r'^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$'
        assert re.match(pattern, tag.pivot.get('created_at'))
        assert tag.pivot.get('created_at') == tag.pivot.get('updated_at')

    def test_belongs_to_many_detach(self):
        post = Post.find(1)
        post.tags().attach([1, 2, 3])
        assert post.tags().detach([1]) == 1
        assert post.tags().detach([]) == 0
        assert sorted(post.tags().current_ids()) == [2, 3]
        assert post.tags().detach() == 2
        assert post.tags().count() == 0

    def test_belongs_to_many_sync(self):
        post = Post.find(1)
        post.tags().attach([1, 2])

        changes = post.tags().sync([2, 3])
        assert changes == {'attached': [3], 'detached': [1], 'updated': []}
        assert sorted(post.tags().current_ids()) == [2, 3]

        changes = post.tags().sync([2, 3])
        assert changes == {'attached': [], 'detached': [], 'updated': []}
        assert sorted(post.tags().current_ids()) == [2, 3]

    def test_belongs_to_many_sync_over_duplicate_link_rows(self):
        post = Post.find(1)
        post.tags().attach(1)
        post.tags().attach(1)
        assert post.tags().current_ids() == [1]

        changes = post.tags().sync([2])
        assert changes == {'attached': [2], 'detached': [1], 'updated': []}
        assert post.tags().current_ids() == [2]

    def test_belongs_to_many_toggle_over_duplicate_link_rows(self):
        post = Post.find(1)
        post.tags().attach([3, 3])

        changes = post.tags().toggle([3, 3])
        assert changes == {'attached': [], 'detached': [3]}
        assert post.tags().count() == 0

    def test_relation_take_zero_is_rejected(self):
        with self.assertRaises(ValueError):
            Post.find(1).comments().take(0)

    def test_belongs_to_many_toggle_twice_restores_set(self):
        post = Post.find(1)
        post.tags().attach([1, 2])

        changes = post.tags().toggle([2, 3])
        assert changes == {'attached': [3], 'detached': [2]}
        assert sorted(post.tags().current_ids()) == [1, 3]

        post.tags().toggle([2, 3])
        assert sorted(post.tags().current_ids()) == [1, 2]

    def test_belongs_to_many_update_existing_pivot(self):
        post = Post.find(1)
        post.tags().attach(1, {'note': 'old'})
        assert post.tags().update_existing_pivot(1, {'note': 'new'}) == 1
        assert post.tags().first().pivot.get('note') == 'new'

    def test_belongs_to_many_pivot_changes_log_at_debug(self):
        with self.assertLogs('sqlrelate.relations', level='DEBUG') as logs:
            Post.find(1).tags().sync([1])
        assert any(['synced post_tag' in line for line in logs.output])

    def test_belongs_to_many_requires_owner_key(self):
        with self.assertRaises(errors.UsageError):
            Post({'title': 'draft'}).tags().attach(1)


if __name__ == '__main__':
    unittest.main()
