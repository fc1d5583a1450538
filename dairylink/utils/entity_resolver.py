"""
Entity resolver for device commands.

Runs the candidate-set lookups of a NormalizedCommand against one tenant
schema. Only ever queries through the TenantContext it is given.
"""
import logging
from dairylink.errors import EntityNotFound
from dairylink.models.machine import Machine
from dairylink.models.society import Society

logger = logging.getLogger(__name__)


def resolve_society(ctx, reference):
    """Resolve a SocietyReference to its society row

    Raises:
        EntityNotFound: no candidate matched
    """
    society = Society.find_by_candidates(ctx, reference)
    if society is None:
        logger.info(f"Society not found in {ctx.schema_name}: {reference.raw!r} (tried {list(reference.spellings)}, id={reference.row_id})")
        raise EntityNotFound(f'Society not found: {reference.raw}', entity='society')
    return society


def resolve_machine(ctx, society_id, reference, require_active=True):
    """Resolve a MachineReference to a machine row of the given society

    Args:
        ctx: TenantContext
        society_id: Resolved society row ID
        reference: MachineReference
        require_active: Reject machines whose status is not 'active'

    Raises:
        EntityNotFound: no candidate matched
    """
    machine = Machine.find_by_candidates(ctx, society_id, reference, require_active=require_active)
    if machine is None:
        logger.info(
            f"Machine not found in {ctx.schema_name}: {reference.raw!r} "
            f"(society={society_id}, tried {list(reference.spellings)}, id={reference.row_id}, "
            f"active_only={require_active})"
        )
        raise EntityNotFound(f'Machine not found: {reference.raw}', entity='machine')
    return machine


def resolve_entities(ctx, command, require_active=True):
    """Resolve both the society and machine of a command

    Returns:
        (society row, machine row)
    """
    society = resolve_society(ctx, command.society)
    machine = resolve_machine(ctx, society['id'], command.machine, require_active=require_active)
    return society, machine
