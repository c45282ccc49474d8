from enum import Enum


class RelationKind(str, Enum):
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"
    BELONGS_TO = "belongs_to"


class RevisionOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
