"""
    Naming helpers used to derive the default table, foreign key, and
    link table names of models and relations. These are called once
    per model class (at class creation), not once per relation.
"""

def short_name(cls: type) -> str:
    """The lowercased short name of a class, e.g. BlogPost -> blogpost."""
    return cls.__name__.lower()

def table_name(cls: type) -> str:
    """Default table name: the lowercased short name plus an 's'."""
    return short_name(cls) + 's'

def foreign_key_name(name: str, key: str = 'id') -> str:
    """Default foreign key column for a lowercased short name."""
    return f'{name}_{key}'

def pivot_table_name(first: str, second: str) -> str:
    """Default link table name: the two lowercased short names sorted
        alphabetically and joined with an underscore.
    """
    return '_'.join(sorted([first.lower(), second.lower()]))
