"""
Dialect-portable SQL functions - PostgreSQL in production, SQLite in tests.
"""
from sqlalchemy import String
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import GenericFunction


class year_month(GenericFunction):
    """YYYY-MM of a datetime column"""
    type = String()
    name = "year_month"
    inherit_cache = True


@compiles(year_month, "postgresql")
def _pg_year_month(element, compiler, **kw):
    col = compiler.process(element.clauses.clauses[0], **kw)
    return f"to_char({col}, 'YYYY-MM')"


@compiles(year_month, "sqlite")
def _sqlite_year_month(element, compiler, **kw):
    col = compiler.process(element.clauses.clauses[0], **kw)
    return f"strftime('%Y-%m', {col})"
