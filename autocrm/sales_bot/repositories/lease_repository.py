"""
Lease Repository

Named TTL leases in scheduler_leases. A lease is held by one holder until
it is released or its expiry passes, so a crashed holder never blocks
later runs for longer than the TTL.
"""

from core.base_repository import BaseRepository
from core.utils.logging_config import get_logger

logger = get_logger('autocrm.sales_bot.repo.lease')


class LeaseRepository(BaseRepository):

    def acquire(self, name: str, holder: str, ttl_seconds: int) -> bool:
        """Take the lease if it is free, expired, or already ours."""
        row = self.execute('''
            INSERT INTO scheduler_leases (name, holder, acquired_at, expires_at)
            VALUES (%s, %s, NOW(), NOW() + make_interval(secs => %s))
            ON CONFLICT (name) DO UPDATE
                SET holder = EXCLUDED.holder,
                    acquired_at = EXCLUDED.acquired_at,
                    expires_at = EXCLUDED.expires_at
                WHERE scheduler_leases.expires_at < NOW()
                   OR scheduler_leases.holder = EXCLUDED.holder
            RETURNING holder
        ''', (name, holder, ttl_seconds), returning=True)
        acquired = row is not None
        if not acquired:
            logger.info(f"Lease '{name}' held by another worker, {holder} skipped")
        return acquired

    def renew(self, name: str, holder: str, ttl_seconds: int) -> bool:
        rowcount = self.execute('''
            UPDATE scheduler_leases
            SET expires_at = NOW() + make_interval(secs => %s)
            WHERE name = %s AND holder = %s
        ''', (ttl_seconds, name, holder))
        return rowcount > 0

    def release(self, name: str, holder: str) -> bool:
        rowcount = self.execute(
            'DELETE FROM scheduler_leases WHERE name = %s AND holder = %s',
            (name, holder),
        )
        return rowcount > 0
