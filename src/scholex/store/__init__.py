"""Rule-set persistence.

Everything outside this package talks to a ``RuleStore``; the SQLAlchemy
model and engines stay behind ``SqlRuleStore``.
"""
from .models import Base, RuleSetRecord
from .rule_store import InMemoryRuleStore, RuleStore, SqlRuleStore

# Lazy wrappers to avoid importing db.py at package import time
def create_sqlite_engine(db_path):
	from .db import create_sqlite_engine as _f
	return _f(db_path)

def create_engine_from_url(db_url):
	from .db import create_engine_from_url as _f
	return _f(db_url)

def init_db(db_path):
	from .db import init_db as _f
	return _f(db_path)

def init_db_from_url(db_url):
	from .db import init_db_from_url as _f
	return _f(db_url)


__all__ = [
	"Base",
	"InMemoryRuleStore",
	"RuleSetRecord",
	"RuleStore",
	"SqlRuleStore",
	"create_engine_from_url",
	"create_sqlite_engine",
	"init_db",
	"init_db_from_url",
]
