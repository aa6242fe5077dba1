"""
Database models for the Stocker REST API.
Defines the candlestick table exposed read-only over HTTP.
"""
from sqlalchemy import BigInteger, Column, Float, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Candlestick(Base):
    """
    OHLCV price record for one interval of a ticker symbol.

    Rows are written by an external ingestion process. The ordering
    low <= open, close <= high is not checked here.
    """
    __tablename__ = "candlestick"

    id = Column(Integer, primary_key=True, autoincrement=True)
    open = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    volume = Column(BigInteger, nullable=False)
    # Seconds since epoch, start of the interval
    timestamp = Column(BigInteger, nullable=False)
    symbol = Column(String(20), nullable=False, index=True)

    def __repr__(self):
        return f"<Candlestick(symbol={self.symbol}, timestamp={self.timestamp})>"
