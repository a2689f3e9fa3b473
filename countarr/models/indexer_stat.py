from sqlalchemy import Column, Integer, String, Date, UniqueConstraint

from countarr.database import Base


class IndexerStat(Base):
    """Tageswerte pro Indexer"""
    __tablename__ = "indexer_stats"
    __table_args__ = (
        UniqueConstraint("indexer_name", "date", name="uq_indexer_stats_name_date"),
    )

    id = Column(Integer, primary_key=True)
    indexer_name = Column(String, nullable=False)
    date = Column(Date, nullable=False)

    searches = Column(Integer, default=0, nullable=False)
    grabs = Column(Integer, default=0, nullable=False)
    failed_grabs = Column(Integer, default=0, nullable=False)
    avg_response_time = Column(Integer, nullable=True)  # ms

    def __repr__(self):
        return f"<IndexerStat {self.indexer_name} {self.date}>"
