"""Column types shared by the models.

Models run on PostgreSQL in deployment and on SQLite in tests, so dialect
specific types are declared as variants.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

JSONType = JSON().with_variant(JSONB(), "postgresql")
