import time
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from threatlens.models import SecuritySettingsRecord, SecurityStatsRecord, WhitelistEntry

logger = logging.getLogger(__name__)

SINGLETON_ID = 1


class SecurityStorage:
    """
    Persistence for the whitelist, counters and runtime settings.

    Database failures never reach the caller: reads fall back to None / [],
    writes return False. Analysis keeps working without persistence.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def load_whitelist(self) -> List[str]:
        db = self.session_factory()
        try:
            rows = db.query(WhitelistEntry).order_by(WhitelistEntry.position, WhitelistEntry.id).all()
            return [row.domain for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load whitelist: {e}")
            return []
        finally:
            db.close()

    def save_whitelist(self, domains: List[str]) -> bool:
        db = self.session_factory()
        try:
            db.query(WhitelistEntry).delete()
            for position, domain in enumerate(domains):
                db.add(WhitelistEntry(domain=domain, position=position))
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to save whitelist: {e}")
            return False
        finally:
            db.close()

    def load_stats(self) -> Optional[Dict]:
        db = self.session_factory()
        try:
            record = db.get(SecurityStatsRecord, SINGLETON_ID)
            if record is None:
                return None
            return {
                'urls_analyzed': record.urls_analyzed or 0,
                'threats_blocked': record.threats_blocked or 0,
                'phishing_detected': record.phishing_detected or 0,
                'content_blocked': record.content_blocked or 0,
                'urls_cleaned': record.urls_cleaned or 0,
                'trackers_blocked': dict(record.trackers_blocked or {}),
                'last_updated': record.last_updated
            }
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load stats: {e}")
            return None
        finally:
            db.close()

    def save_stats(self, stats: Dict) -> bool:
        db = self.session_factory()
        try:
            record = db.get(SecurityStatsRecord, SINGLETON_ID)
            if record is None:
                record = SecurityStatsRecord(id=SINGLETON_ID)
                db.add(record)

            record.urls_analyzed = stats.get('urls_analyzed', 0)
            record.threats_blocked = stats.get('threats_blocked', 0)
            record.phishing_detected = stats.get('phishing_detected', 0)
            record.content_blocked = stats.get('content_blocked', 0)
            record.urls_cleaned = stats.get('urls_cleaned', 0)
            record.trackers_blocked = dict(stats.get('trackers_blocked') or {})
            record.last_updated = stats.get('last_updated') or int(time.time() * 1000)

            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to save stats: {e}")
            return False
        finally:
            db.close()

    def load_settings(self) -> Optional[Dict]:
        db = self.session_factory()
        try:
            record = db.get(SecuritySettingsRecord, SINGLETON_ID)
            return dict(record.payload) if record and record.payload else None
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load settings: {e}")
            return None
        finally:
            db.close()

    def save_settings(self, payload: Dict) -> bool:
        db = self.session_factory()
        try:
            record = db.get(SecuritySettingsRecord, SINGLETON_ID)
            if record is None:
                db.add(SecuritySettingsRecord(id=SINGLETON_ID, payload=payload))
            else:
                record.payload = payload
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to save settings: {e}")
            return False
        finally:
            db.close()
