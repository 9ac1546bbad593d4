from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
	pass


class RuleSetRecord(Base):
	__tablename__ = "rule_sets"

	source_id: Mapped[str] = mapped_column(String(255), primary_key=True)
	enabled: Mapped[bool] = mapped_column(Boolean, default=True)
	detected_format: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # bracket_label|...|html_list|xml_feed
	confidence: Mapped[float] = mapped_column(Float, default=0.0)
	pattern_source: Mapped[str] = mapped_column(String(20), default="auto_detected")
	payload: Mapped[str] = mapped_column(Text)  # JSON rule-set document
	updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
