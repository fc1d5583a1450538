"""
Device command operations.

One function per device capability. Each takes the TenantContext and the
NormalizedCommand, resolves the entities it needs, applies its persistence
rule and returns plain data for the response encoder. Failures are raised as
DeviceProtocolError subclasses and rendered by the calling route's policy.
"""
import logging
from dairylink.errors import NotSet
from dairylink.models.farmer import DEFAULT_PAGE_SIZE, Farmer
from dairylink.models.machine import Machine
from dairylink.models.machine_correction import DEFAULT_HISTORY_LIMIT, MachineCorrection
from dairylink.models.rate_chart import RateChart
from dairylink.utils.entity_resolver import resolve_entities, resolve_society

logger = logging.getLogger(__name__)

NO_UPDATE = 'No update'


def fetch_roster(ctx, command, page_size=DEFAULT_PAGE_SIZE):
    """Active farmers of the society, filtered to the command's machine

    Returns:
        List of farmer rows (one page when the command is paginated)

    Raises:
        NotSet: no farmers (including an out-of-range page)
    """
    society = resolve_society(ctx, command.society)
    farmers = Farmer.find_roster(
        ctx,
        society['id'],
        machine_ref=command.machine,
        page=command.page,
        page_size=page_size
    )
    if not farmers:
        raise NotSet('Farmer info not found', society_id=society['id'], page=command.page)
    return farmers


def read_correction(ctx, command):
    """Current active correction of an active machine"""
    _, machine = resolve_entities(ctx, command, require_active=True)
    correction = MachineCorrection.find_active(ctx, machine['id'])
    if correction is None:
        raise NotSet('No active correction', machine_id=machine['id'])
    return correction


def write_correction(ctx, command, now=None, history_limit=DEFAULT_HISTORY_LIMIT):
    """Save one channel's correction reported by the device

    Suspended machines are still accepted here.
    """
    society, machine = resolve_entities(ctx, command, require_active=False)
    return MachineCorrection.save_from_machine(
        ctx,
        machine['id'],
        society['id'],
        command.machine_type,
        command.channel,
        command.values,
        now=now,
        history_limit=history_limit
    )


def invalidate_correction(ctx, command, now=None):
    """Device acknowledgement that it applied its correction"""
    _, machine = resolve_entities(ctx, command, require_active=True)
    count = MachineCorrection.invalidate(ctx, machine['id'], now=now)
    logger.info(f"Deactivated {count} correction rows for machine {machine['id']}")
    return count


def read_credential(ctx, command):
    """Deliverable credential of an active machine as (marker, password)"""
    _, machine = resolve_entities(ctx, command, require_active=True)
    return Machine.get_credential(machine, command.password_type)


def acknowledge_credential(ctx, command):
    """Flip the requested credential flag to not-set"""
    _, machine = resolve_entities(ctx, command, require_active=False)
    Machine.acknowledge_credential(ctx, machine['id'], command.password_type)
    return machine['id']


def download_rate_chart(ctx, command, now=None):
    """Price rows of the society's active chart for the requested channel

    Records the download for the machine (repeat downloads keep one row).
    """
    society, machine = resolve_entities(ctx, command, require_active=True)
    chart = RateChart.find_active(ctx, society['id'], command.channel)
    if chart is None:
        raise NotSet('No active rate chart', society_id=society['id'], channel=command.channel)

    rows = RateChart.get_price_rows(ctx, chart['id'])
    if not rows:
        raise NotSet('Rate chart has no price rows', chart_id=chart['id'])

    RateChart.record_download(ctx, chart['id'], machine['id'], society['id'], command.channel, now=now)
    return rows


def firmware_handshake(ctx, command):
    """Firmware update check; no updates are published yet

    The society must resolve. An unknown machine is only logged.
    """
    society = resolve_society(ctx, command.society)
    machine = Machine.find_by_candidates(ctx, society['id'], command.machine)
    if machine is None:
        logger.info(f"Handshake from unregistered machine {command.machine.raw!r} in society {society['id']}")
    # No firmware catalogue exists yet, so every machine is up to date
    return NO_UPDATE
