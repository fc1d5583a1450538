from sqlalchemy import func, insert, select
from dairylink.models.schema import farmers, machines

ACTIVE_STATUS = 'active'
DEFAULT_PAGE_SIZE = 5


class Farmer:
    @staticmethod
    def create(ctx, society_id, farmer_id, name, rf_id=None, phone=None, sms_enabled='OFF',
               bonus=0, machine_id=None, status=ACTIVE_STATUS):
        """Create a farmer in the tenant schema

        Returns:
            New farmer row ID
        """
        result = ctx.execute(insert(farmers).values(
            society_id=society_id,
            farmer_id=farmer_id,
            name=name,
            rf_id=rf_id,
            phone=phone,
            sms_enabled=sms_enabled,
            bonus=bonus,
            machine_id=machine_id,
            status=status
        ))
        return result.inserted_primary_key[0]

    @staticmethod
    def find_roster(ctx, society_id, machine_ref=None, page=None, page_size=DEFAULT_PAGE_SIZE):
        """Get active farmers of a society, optionally for one machine

        Args:
            ctx: TenantContext
            society_id: Resolved society row ID
            machine_ref: MachineReference (numeric-first grammar). A row ID
                filters on farmers.machine_id, spellings on machines.machine_id
            page: 1-indexed page number, or None for the full roster
            page_size: Rows per page

        Returns:
            List of row mappings (farmer_id, rf_id, name, phone, sms_enabled,
            bonus) ordered by farmer_id
        """
        stmt = (
            select(
                farmers.c.farmer_id,
                farmers.c.rf_id,
                farmers.c.name,
                farmers.c.phone,
                farmers.c.sms_enabled,
                farmers.c.bonus
            )
            .select_from(farmers.outerjoin(machines, farmers.c.machine_id == machines.c.id))
            .where(farmers.c.society_id == society_id, farmers.c.status == ACTIVE_STATUS)
        )

        if machine_ref is not None:
            if machine_ref.row_id is not None:
                stmt = stmt.where(farmers.c.machine_id == machine_ref.row_id)
            else:
                lowered = [spelling.lower() for spelling in machine_ref.spellings]
                stmt = stmt.where(func.lower(machines.c.machine_id).in_(lowered))

        stmt = stmt.order_by(farmers.c.farmer_id, farmers.c.id)

        if page is not None:
            page = max(int(page), 1)
            stmt = stmt.limit(page_size).offset((page - 1) * page_size)

        return list(ctx.execute(stmt).mappings().all())
