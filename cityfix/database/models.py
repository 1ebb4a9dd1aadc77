from sqlalchemy import Column, DateTime, Integer, String, Text

from cityfix.database.config import Base


class Issue(Base):
    __tablename__ = "issues"

    # Surrogate key, only used to list issues in insertion order
    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, index=True, nullable=False)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    photo_url = Column(String, nullable=True)
    status = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=True)

    generated_summary = Column(Text, nullable=True)
    solution_description = Column(Text, nullable=True)
