# investo/models/batch_run.py
"""
BatchRun model - run lock and result of a scheduled job for one business day.
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, JSON, UniqueConstraint
from models.base import Base


class BatchRun(Base):
    __tablename__ = 'batch_runs'
    __table_args__ = (
        UniqueConstraint('jobName', 'runDate', name='uq_batch_runs_job_date'),
    )

    runID = Column(Integer, primary_key=True, autoincrement=True)
    jobName = Column(String(50), nullable=False)
    runDate = Column(Date, nullable=False)  # business-timezone calendar date

    status = Column(String(20), nullable=False, default='running', index=True)  # running, completed, failed
    attempts = Column(Integer, nullable=False, default=1)

    startedAt = Column(DateTime, nullable=False)
    finishedAt = Column(DateTime, nullable=True)

    summary = Column(JSON, nullable=True)
    lastError = Column(String, nullable=True)

    def __repr__(self):
        return f"<BatchRun(jobName={self.jobName}, runDate={self.runDate}, status={self.status})>"
