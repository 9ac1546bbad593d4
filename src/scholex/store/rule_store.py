"""Rule-set stores keyed by source id.

The orchestrator depends only on the ``RuleStore`` protocol. Stored values
are the JSON document produced by ``rule_set_to_dict``; a store never hands
back a half-parsed rule set: malformed documents raise ``RuleSetFormatError``.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from ..errors import RuleSetFormatError
from ..rules import ExtractionRuleSet, rule_set_from_dict, rule_set_to_dict
from .models import Base, RuleSetRecord

logger = logging.getLogger(__name__)


class RuleStore(Protocol):
	def load(self, source_id: str) -> Optional[ExtractionRuleSet]:
		...

	def save(self, source_id: str, rule_set: ExtractionRuleSet) -> None:
		...

	def delete(self, source_id: str) -> bool:
		...

	def source_ids(self) -> List[str]:
		...


class InMemoryRuleStore:
	"""Dict-backed store holding serialised documents, like a real backend."""

	def __init__(self) -> None:
		self._documents: Dict[str, str] = {}

	def load(self, source_id: str) -> Optional[ExtractionRuleSet]:
		document = self._documents.get(source_id)
		if document is None:
			return None
		try:
			data = json.loads(document)
		except json.JSONDecodeError as e:
			raise RuleSetFormatError(f"Stored rule set for {source_id!r} is not valid JSON: {e}")
		return rule_set_from_dict(data)

	def save(self, source_id: str, rule_set: ExtractionRuleSet) -> None:
		self._documents[source_id] = json.dumps(rule_set_to_dict(rule_set), ensure_ascii=False)

	def delete(self, source_id: str) -> bool:
		return self._documents.pop(source_id, None) is not None

	def source_ids(self) -> List[str]:
		return sorted(self._documents)

	def put_raw(self, source_id: str, document: str) -> None:
		"""Store a document verbatim (used to simulate stale or corrupt rows)."""
		self._documents[source_id] = document


class SqlRuleStore:
	def __init__(self, engine, SessionLocal, create_schema: bool = True):
		self.engine = engine
		self.SessionLocal = SessionLocal
		if create_schema:
			Base.metadata.create_all(engine)

	@classmethod
	def from_settings(cls, settings) -> "SqlRuleStore":
		from .db import create_engine_from_url, create_sqlite_engine

		if settings.db_url:
			engine, SessionLocal = create_engine_from_url(settings.db_url)
		else:
			engine, SessionLocal = create_sqlite_engine(settings.db_path)
		return cls(engine, SessionLocal)

	def load(self, source_id: str) -> Optional[ExtractionRuleSet]:
		with self.SessionLocal() as session:
			record = session.get(RuleSetRecord, source_id)
			if record is None:
				return None
			payload = record.payload
		try:
			data = json.loads(payload)
		except json.JSONDecodeError as e:
			raise RuleSetFormatError(f"Stored rule set for {source_id!r} is not valid JSON: {e}")
		return rule_set_from_dict(data)

	def save(self, source_id: str, rule_set: ExtractionRuleSet) -> None:
		document = rule_set_to_dict(rule_set)
		with self.SessionLocal() as session:
			record = session.get(RuleSetRecord, source_id)
			if record is None:
				record = RuleSetRecord(source_id=source_id)
				session.add(record)
			record.enabled = rule_set.enabled
			record.detected_format = rule_set.format_id
			record.confidence = rule_set.confidence
			record.pattern_source = rule_set.source.value
			record.payload = json.dumps(document, ensure_ascii=False)
			record.updated_at = datetime.now(timezone.utc)
			session.commit()
		logger.debug(f"Saved rule set for {source_id} ({rule_set.format_id}, confidence={rule_set.confidence})")

	def delete(self, source_id: str) -> bool:
		with self.SessionLocal() as session:
			record = session.get(RuleSetRecord, source_id)
			if record is None:
				return False
			session.delete(record)
			session.commit()
		return True

	def source_ids(self) -> List[str]:
		with self.SessionLocal() as session:
			rows = session.query(RuleSetRecord.source_id).order_by(RuleSetRecord.source_id).all()
		return [r[0] for r in rows]

	def put_raw(self, source_id: str, document: str) -> None:
		with self.SessionLocal() as session:
			record = session.get(RuleSetRecord, source_id) or RuleSetRecord(source_id=source_id)
			record.payload = document
			session.merge(record)
			session.commit()
