"""SQLAlchemy database models for execution records."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, JSON, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .database import Base


class ExecutionModel(Base):
    """Database model for one agent workflow run."""
    __tablename__ = "executions"

    id = Column(String, primary_key=True)
    agent_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)  # running, completed, failed
    start_time = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_time = Column(DateTime)
    duration = Column(Integer)  # milliseconds
    error = Column(Text)

    logs = relationship(
        "ExecutionLogModel",
        back_populates="execution",
        order_by="ExecutionLogModel.seq",
        cascade="all, delete-orphan"
    )
    results = relationship(
        "NodeResultModel",
        back_populates="execution",
        order_by="NodeResultModel.seq",
        cascade="all, delete-orphan"
    )


class ExecutionLogModel(Base):
    """Database model for execution log entries."""
    __tablename__ = "execution_logs"
    __table_args__ = (UniqueConstraint("execution_id", "seq", name="uq_execution_logs_seq"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String, ForeignKey("executions.id"), nullable=False)
    seq = Column(Integer, nullable=False)  # per-execution sequence shared with node results
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    level = Column(String, nullable=False)  # info, warning, error
    message = Column(Text, nullable=False)
    data = Column(JSON)

    execution = relationship("ExecutionModel", back_populates="logs")


class NodeResultModel(Base):
    """Database model for the output of one node visit."""
    __tablename__ = "node_results"
    __table_args__ = (UniqueConstraint("execution_id", "seq", name="uq_node_results_seq"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String, ForeignKey("executions.id"), nullable=False)
    seq = Column(Integer, nullable=False)
    node_id = Column(String, nullable=False)
    node_type = Column(String, nullable=False)
    node_label = Column(String)
    result = Column(JSON)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    execution = relationship("ExecutionModel", back_populates="results")
