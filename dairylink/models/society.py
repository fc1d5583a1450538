from sqlalchemy import case, insert, or_, select
from dairylink.models.schema import societies


class Society:
    @staticmethod
    def find_by_candidates(ctx, reference):
        """Find the society any candidate spelling (or the row ID) refers to

        String spellings are tried in the order given and win over a row-ID
        match, all in a single query.

        Args:
            ctx: TenantContext
            reference: SocietyReference from the field normalizer

        Returns:
            Society row mapping or None
        """
        conditions = [societies.c.society_id.in_(reference.spellings)]
        if reference.row_id is not None:
            conditions.append(societies.c.id == reference.row_id)

        priority = case(
            {spelling: index for index, spelling in enumerate(reference.spellings)},
            value=societies.c.society_id,
            else_=len(reference.spellings)
        )
        stmt = (
            select(societies)
            .where(or_(*conditions))
            .order_by(priority, societies.c.id)
            .limit(1)
        )
        return ctx.execute(stmt).mappings().first()

    @staticmethod
    def create(ctx, society_id, name, location=None, president_name=None, contact_phone=None):
        """Create a society in the tenant schema

        Returns:
            New society row ID
        """
        result = ctx.execute(insert(societies).values(
            society_id=society_id,
            name=name,
            location=location,
            president_name=president_name,
            contact_phone=contact_phone
        ))
        return result.inserted_primary_key[0]
