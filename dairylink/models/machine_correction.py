import logging
from datetime import datetime, time, timedelta
from decimal import Decimal
from sqlalchemy import delete, insert, select, update
from dairylink.models.schema import CORRECTION_FIELDS, machine_corrections, machines
from dairylink.utils.clock import local_now

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 5
CHANNEL_NUMBERS = {'COW': 1, 'BUF': 2, 'MIX': 3}
ZERO = Decimal('0.00')


def _channel_values(channel_number, values):
    """Map {'fat': .., 'snf': ..} to channel{n}_fat, channel{n}_snf, ..."""
    return {
        f'channel{channel_number}_{name}': values.get(name, ZERO)
        for name in CORRECTION_FIELDS
    }


def _empty_channels():
    values = {}
    for channel_number in CHANNEL_NUMBERS.values():
        values.update(_channel_values(channel_number, {}))
    return values


class MachineCorrection:
    @staticmethod
    def find_active(ctx, machine_id):
        """Get the most recent active correction row of a machine, or None"""
        stmt = (
            select(machine_corrections)
            .where(
                machine_corrections.c.machine_id == machine_id,
                machine_corrections.c.status == 1
            )
            .order_by(machine_corrections.c.created_at.desc(), machine_corrections.c.id.desc())
            .limit(1)
        )
        return ctx.execute(stmt).mappings().first()

    @staticmethod
    def find_by_machine(ctx, machine_id):
        """Get every correction row of a machine, newest first"""
        stmt = (
            select(machine_corrections)
            .where(machine_corrections.c.machine_id == machine_id)
            .order_by(machine_corrections.c.created_at.desc(), machine_corrections.c.id.desc())
        )
        return list(ctx.execute(stmt).mappings().all())

    @staticmethod
    def _lock_machine(ctx, machine_id):
        """Serialize correction writes for one machine (no-op where unsupported)"""
        stmt = select(machines.c.id).where(machines.c.id == machine_id).with_for_update()
        ctx.execute(stmt)

    @staticmethod
    def save_from_machine(ctx, machine_id, society_id, machine_type, channel, values,
                          now=None, history_limit=DEFAULT_HISTORY_LIMIT):
        """Save one channel's correction reported by a device

        Same-day writes update today's active row in place and leave the other
        channels untouched. Otherwise a new row is inserted with only this
        channel populated. The machine's history is then pruned.

        Args:
            ctx: TenantContext (its transaction covers the whole sequence)
            machine_id: Machine row ID
            society_id: Society row ID
            machine_type: Machine type reported by the device
            channel: 'COW', 'BUF' or 'MIX'
            values: Dict of fat, snf, clr, temp, water, protein
            now: Device-local time, defaults to local_now()
            history_limit: Rows to keep per machine

        Returns:
            ID of the row written
        """
        now = now or local_now()
        channel_number = CHANNEL_NUMBERS[channel]
        day_start = datetime.combine(now.date(), time.min)
        day_end = day_start + timedelta(days=1)

        MachineCorrection._lock_machine(ctx, machine_id)

        existing = ctx.execute(
            select(machine_corrections.c.id)
            .where(
                machine_corrections.c.machine_id == machine_id,
                machine_corrections.c.society_id == society_id,
                machine_corrections.c.status == 1,
                machine_corrections.c.created_at >= day_start,
                machine_corrections.c.created_at < day_end
            )
            .order_by(machine_corrections.c.created_at.desc(), machine_corrections.c.id.desc())
            .limit(1)
        ).first()

        if existing is not None:
            correction_id = existing.id
            ctx.execute(
                update(machine_corrections)
                .where(machine_corrections.c.id == correction_id)
                .values(
                    machine_type=machine_type,
                    status=1,
                    updated_at=now,
                    **_channel_values(channel_number, values)
                )
            )
            logger.info(f"Updated today's correction {correction_id} for machine {machine_id} ({channel})")
        else:
            row = _empty_channels()
            row.update(_channel_values(channel_number, values))
            result = ctx.execute(
                insert(machine_corrections).values(
                    machine_id=machine_id,
                    society_id=society_id,
                    machine_type=machine_type,
                    status=1,
                    created_at=now,
                    updated_at=now,
                    **row
                )
            )
            correction_id = result.inserted_primary_key[0]
            logger.info(f"Inserted correction {correction_id} for machine {machine_id} ({channel})")

        MachineCorrection.prune(ctx, machine_id, history_limit)
        return correction_id

    @staticmethod
    def save_from_admin(ctx, machine_id, society_id, machine_type, channels,
                        now=None, history_limit=DEFAULT_HISTORY_LIMIT):
        """Replace the active correction of a machine with a full three-channel row

        Args:
            ctx: TenantContext
            machine_id: Machine row ID
            society_id: Society row ID
            machine_type: Machine type
            channels: Dict of 'COW'/'BUF'/'MIX' -> values dict (missing
                channels and fields are stored as 0.00)
            now: Device-local time, defaults to local_now()
            history_limit: Rows to keep per machine

        Returns:
            ID of the inserted row
        """
        now = now or local_now()
        MachineCorrection._lock_machine(ctx, machine_id)
        MachineCorrection.invalidate(ctx, machine_id, now=now)

        row = _empty_channels()
        for channel, values in channels.items():
            row.update(_channel_values(CHANNEL_NUMBERS[channel], values))

        result = ctx.execute(
            insert(machine_corrections).values(
                machine_id=machine_id,
                society_id=society_id,
                machine_type=machine_type,
                status=1,
                created_at=now,
                updated_at=now,
                **row
            )
        )
        correction_id = result.inserted_primary_key[0]
        MachineCorrection.prune(ctx, machine_id, history_limit)
        logger.info(f"Admin correction {correction_id} saved for machine {machine_id}")
        return correction_id

    @staticmethod
    def invalidate(ctx, machine_id, now=None):
        """Set status=0 on every active correction row of a machine

        Returns:
            Number of rows deactivated
        """
        result = ctx.execute(
            update(machine_corrections)
            .where(
                machine_corrections.c.machine_id == machine_id,
                machine_corrections.c.status == 1
            )
            .values(status=0, updated_at=now or local_now())
        )
        return result.rowcount

    @staticmethod
    def prune(ctx, machine_id, keep=DEFAULT_HISTORY_LIMIT):
        """Delete all but the `keep` most recently created rows of a machine

        Returns:
            Number of rows deleted
        """
        stale_ids = ctx.execute(
            select(machine_corrections.c.id)
            .where(machine_corrections.c.machine_id == machine_id)
            .order_by(machine_corrections.c.created_at.desc(), machine_corrections.c.id.desc())
            .offset(keep)
        ).scalars().all()

        if not stale_ids:
            return 0

        ctx.execute(delete(machine_corrections).where(machine_corrections.c.id.in_(stale_ids)))
        logger.info(f"Pruned {len(stale_ids)} old correction rows for machine {machine_id}")
        return len(stale_ids)
