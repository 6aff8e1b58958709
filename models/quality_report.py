from sqlalchemy import Column, BigInteger, String, DateTime, Float, Integer, Boolean, Enum, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, CheckType, Severity


class QualityReportRecord(Base):
    """
    One data quality assessment of a connection.

    Purpose:
    - History of quality scores per connection
    - Latest report lookup for the API
    """
    __tablename__ = "quality_reports"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    connection_id = Column(String(255), nullable=False)
    workflow_id = Column(String(255), nullable=True)

    overall_score = Column(Float, nullable=True)
    tables_checked = Column(Integer, default=0)
    checks_run = Column(Integer, default=0)
    checks_passed = Column(Integer, default=0)
    checks_failed = Column(Integer, default=0)
    critical_issues = Column(Integer, default=0)
    warnings = Column(Integer, default=0)

    recommendations = Column(JSONB, nullable=True)
    report = Column(JSONB, nullable=False)

    generated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    checks = relationship("QualityCheckRecord", back_populates="report", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_quality_report_connection_generated", "connection_id", "generated_at"),
    )


class QualityCheckRecord(Base):
    """Single check outcome, flattened for per-table trend queries"""
    __tablename__ = "quality_checks"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    report_id = Column(BigInteger, ForeignKey("quality_reports.id", ondelete="CASCADE"), nullable=False, index=True)

    table_name = Column(String(512), nullable=False)
    column_name = Column(String(255), nullable=True)
    rule_name = Column(String(255), nullable=True)
    check_type = Column(Enum(CheckType), nullable=False)
    severity = Column(Enum(Severity), nullable=False)

    passed = Column(Boolean, nullable=False)
    score = Column(Float, nullable=False)
    threshold = Column(Float, nullable=False)
    details = Column(JSONB, nullable=True)

    report = relationship("QualityReportRecord", back_populates="checks")
