from sqlalchemy import BigInteger, Column, Integer, String, DateTime, JSON
from datetime import datetime
from threatlens.database import Base


class WhitelistEntry(Base):
    __tablename__ = "whitelist_entries"

    id = Column(Integer, primary_key=True, index=True)
    domain = Column(String(255), unique=True, index=True, nullable=False)
    position = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)


class SecurityStatsRecord(Base):
    __tablename__ = "security_stats"

    id = Column(Integer, primary_key=True, index=True)
    urls_analyzed = Column(Integer, default=0)
    threats_blocked = Column(Integer, default=0)
    phishing_detected = Column(Integer, default=0)
    content_blocked = Column(Integer, default=0)
    urls_cleaned = Column(Integer, default=0)
    # category -> count
    trackers_blocked = Column(JSON)

    # epoch milliseconds, matches the API payload
    last_updated = Column(BigInteger)


class SecuritySettingsRecord(Base):
    __tablename__ = "security_settings"

    id = Column(Integer, primary_key=True, index=True)
    payload = Column(JSON, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
