import logging
from sqlalchemy import case, func, insert, or_, select, update
from dairylink.errors import NotSet
from dairylink.models.schema import machines
from dairylink.utils.clock import local_now

logger = logging.getLogger(__name__)

ACTIVE_STATUS = 'active'

# password type -> (status flag column, password column, role marker)
CREDENTIALS = {
    'U': ('statusU', 'user_password', 'PU'),
    'S': ('statusS', 'supervisor_password', 'PS'),
}


def _dedupe_lowered(spellings):
    lowered = []
    for spelling in spellings:
        if spelling.lower() not in lowered:
            lowered.append(spelling.lower())
    return lowered


class Machine:
    @staticmethod
    def create(ctx, society_id, machine_id, machine_type, status=ACTIVE_STATUS, location=None):
        """Create a machine for a society in the tenant schema

        Returns:
            New machine row ID
        """
        result = ctx.execute(insert(machines).values(
            society_id=society_id,
            machine_id=machine_id,
            machine_type=machine_type,
            status=status,
            location=location
        ))
        return result.inserted_primary_key[0]

    @staticmethod
    def find_by_id(ctx, machine_id):
        """Find machine by row ID in the tenant schema"""
        stmt = select(machines).where(machines.c.id == machine_id)
        return ctx.execute(stmt).mappings().first()

    @staticmethod
    def find_by_candidates(ctx, society_id, reference, require_active=False):
        """Find a machine of a society from a MachineReference

        Args:
            ctx: TenantContext
            society_id: Resolved society row ID
            reference: MachineReference from the field normalizer
            require_active: Only match machines whose status is 'active'

        Returns:
            Machine row mapping or None
        """
        lowered = _dedupe_lowered(reference.spellings)
        conditions = []
        if lowered:
            conditions.append(func.lower(machines.c.machine_id).in_(lowered))
        if reference.row_id is not None:
            conditions.append(machines.c.id == reference.row_id)
        if not conditions:
            return None

        stmt = select(machines).where(machines.c.society_id == society_id, or_(*conditions))
        if require_active:
            stmt = stmt.where(machines.c.status == ACTIVE_STATUS)

        if lowered:
            # Spellings in the order given, then a bare row-ID match
            priority = case(
                {spelling: index for index, spelling in enumerate(lowered)},
                value=func.lower(machines.c.machine_id),
                else_=len(lowered)
            )
            stmt = stmt.order_by(priority, machines.c.id)
        else:
            stmt = stmt.order_by(machines.c.id)

        return ctx.execute(stmt.limit(1)).mappings().first()

    @staticmethod
    def get_credential(machine, password_type):
        """Get the deliverable credential of a machine row

        Args:
            machine: Machine row mapping
            password_type: 'U' (user) or 'S' (supervisor)

        Returns:
            (role marker, password) tuple, e.g. ('PU', '1234')

        Raises:
            NotSet: the credential's status flag is not set. The password
                value is never returned in that case.
        """
        status_column, password_column, marker = CREDENTIALS[password_type]
        if machine[status_column] != 1:
            raise NotSet(f'{marker} credential not set', machine_id=machine['id'])
        return marker, machine[password_column] or ''

    @staticmethod
    def acknowledge_credential(ctx, machine_id, password_type):
        """Mark a credential as delivered (flag -> not set); idempotent"""
        status_column = CREDENTIALS[password_type][0]
        stmt = (
            update(machines)
            .where(machines.c.id == machine_id)
            .values({status_column: 0, 'updated_at': local_now()})
        )
        ctx.execute(stmt)
        logger.info(f"Credential {password_type} acknowledged for machine {machine_id}")

    @staticmethod
    def set_credential(ctx, machine_id, password_type, password):
        """Store a credential and flag it as deliverable to the device"""
        status_column, password_column, _ = CREDENTIALS[password_type]
        stmt = (
            update(machines)
            .where(machines.c.id == machine_id)
            .values({status_column: 1, password_column: password, 'updated_at': local_now()})
        )
        ctx.execute(stmt)
