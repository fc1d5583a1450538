from flask import Blueprint, current_app, request
import logging
from dairylink.errors import DeviceProtocolError
from dairylink.models.tenant import Tenant, tenant_scope
from dairylink.utils import device_commands
from dairylink.utils.clock import local_now
from dairylink.utils.field_normalizer import (
    CORRECTION_INVALIDATE, CORRECTION_READ, CORRECTION_WRITE, CREDENTIAL_ACK,
    CREDENTIAL_READ, FIRMWARE_HANDSHAKE, RATE_CHART, ROSTER, normalize
)
from dairylink.utils.payload_decoder import decode_command
from dairylink.utils.response_encoder import (
    CLOUD_TEST_POLICY, CORRECTION_INVALIDATE_POLICY, CORRECTION_READ_POLICY,
    CORRECTION_WRITE_POLICY, CREDENTIAL_ACK_POLICY, CREDENTIAL_READ_POLICY,
    HANDSHAKE_POLICY, RATE_CHART_POLICY, ROSTER_POLICY, csv_response,
    format_correction, format_credential, format_handshake,
    format_rate_chart_csv, format_roster_csv, format_roster_page,
    parse_device_timestamp, preflight_response, quote, text_response
)

logger = logging.getLogger(__name__)

device_bp = Blueprint('device', __name__)

DEVICE_METHODS = ['GET', 'POST', 'OPTIONS']


def handle_device_request(db_key, operation, policy, run):
    """Decode, resolve and run one device command

    Args:
        db_key: Tenant key from the URL
        operation: Field normalizer operation name
        policy: ResponsePolicy used for every failure
        run: Callable (ctx, command) -> Response, executed inside the
            tenant transaction

    Returns:
        Flask Response (device bodies only, never JSON)
    """
    if request.method == 'OPTIONS':
        return preflight_response()

    decoded = None
    command = None
    try:
        decoded = decode_command(request)
        tenant = Tenant.resolve(db_key)
        command = normalize(decoded, operation)
        with tenant_scope(tenant) as ctx:
            return run(ctx, command)
    except DeviceProtocolError as e:
        raw_input = decoded.raw if decoded else None
        logger.info(
            f"[{policy.name}] {type(e).__name__}: {e.message} "
            f"(db_key={db_key}, input={raw_input!r}, context={e.context})"
        )
        return policy.error_response(e)
    except Exception:
        raw_input = decoded.raw if decoded else None
        logger.exception(
            f"[{policy.name}] Unexpected error (db_key={db_key}, "
            f"input={raw_input!r}, command={command})"
        )
        return policy.error_response(None)


@device_bp.route('/<db_key>/FarmerInfo/GetLatestFarmerInfo', methods=DEVICE_METHODS)
def get_latest_farmer_info(db_key):
    """Farmer roster: CSV export (4 fields) or a page of 5 (5 fields)"""
    page_size = current_app.config.get('ROSTER_PAGE_SIZE', 5)

    def run(ctx, command):
        farmers = device_commands.fetch_roster(ctx, command, page_size=page_size)
        if command.is_paginated:
            return text_response(format_roster_page(farmers))
        return csv_response(format_roster_csv(farmers), 'FarmerDetails.csv')

    return handle_device_request(db_key, ROSTER, ROSTER_POLICY, run)


@device_bp.route('/<db_key>/MachineCorrection/GetLatestMachineCorrection', methods=DEVICE_METHODS)
def get_latest_machine_correction(db_key):
    def run(ctx, command):
        correction = device_commands.read_correction(ctx, command)
        return text_response(format_correction(correction))

    return handle_device_request(db_key, CORRECTION_READ, CORRECTION_READ_POLICY, run)


@device_bp.route('/<db_key>/MachineCorrection/SaveMachineCorrectionFromMachine', methods=DEVICE_METHODS)
def save_machine_correction_from_machine(db_key):
    history_limit = current_app.config.get('CORRECTION_HISTORY_LIMIT', 5)

    def run(ctx, command):
        device_commands.write_correction(ctx, command, history_limit=history_limit)
        return text_response(quote('Machine correction saved successfully.'))

    return handle_device_request(db_key, CORRECTION_WRITE, CORRECTION_WRITE_POLICY, run)


@device_bp.route('/<db_key>/MachineCorrection/SaveMachineCorrectionUpdationHistory', methods=DEVICE_METHODS)
def save_machine_correction_updation_history(db_key):
    def run(ctx, command):
        device_commands.invalidate_correction(ctx, command)
        return text_response(quote('Machine correction status updated successfully.'))

    return handle_device_request(db_key, CORRECTION_INVALIDATE, CORRECTION_INVALIDATE_POLICY, run)


@device_bp.route('/<db_key>/MachinePassword/GetLatestMachinePassword', methods=DEVICE_METHODS)
def get_latest_machine_password(db_key):
    def run(ctx, command):
        marker, password = device_commands.read_credential(ctx, command)
        return text_response(format_credential(marker, password))

    return handle_device_request(db_key, CREDENTIAL_READ, CREDENTIAL_READ_POLICY, run)


@device_bp.route('/<db_key>/MachinePassword/UpdateMachinePasswordStatus', methods=DEVICE_METHODS)
def update_machine_password_status(db_key):
    def run(ctx, command):
        device_commands.acknowledge_credential(ctx, command)
        return text_response(quote('Machine password status updated successfully.'))

    return handle_device_request(db_key, CREDENTIAL_ACK, CREDENTIAL_ACK_POLICY, run)


@device_bp.route('/<db_key>/PriceChartUpdation/DownloadRateChart', methods=DEVICE_METHODS)
def download_rate_chart(db_key):
    def run(ctx, command):
        rows = device_commands.download_rate_chart(ctx, command)
        return csv_response(format_rate_chart_csv(rows), 'PriceChart.csv', no_cache=True)

    return handle_device_request(db_key, RATE_CHART, RATE_CHART_POLICY, run)


@device_bp.route('/<db_key>/MachineNewupdate/FromMachine', methods=DEVICE_METHODS)
def machine_new_update_from_machine(db_key):
    """Firmware handshake; answers 200 with a timestamped status line, always"""
    def run(ctx, command):
        reported_at = parse_device_timestamp(command.date_marker)
        if reported_at is None:
            logger.info(f"Unparsable handshake date marker {command.date_marker!r}, using server time")
        status = device_commands.firmware_handshake(ctx, command)
        return text_response(
            format_handshake(local_now(), status),
            headers={'Cache-Control': 'no-cache'}
        )

    return handle_device_request(db_key, FIRMWARE_HANDSHAKE, HANDSHAKE_POLICY, run)


@device_bp.route('/<db_key>/Machine/CloudTest', methods=DEVICE_METHODS)
def cloud_test(db_key):
    """Connectivity check; only the tenant key is validated"""
    if request.method == 'OPTIONS':
        return preflight_response()

    try:
        tenant = Tenant.resolve(db_key)
    except DeviceProtocolError as e:
        logger.info(f"[CloudTest] {type(e).__name__}: {e.message} (db_key={db_key})")
        return CLOUD_TEST_POLICY.error_response(e)
    except Exception:
        logger.exception(f"[CloudTest] Unexpected error (db_key={db_key})")
        return CLOUD_TEST_POLICY.error_response(None)

    logger.info(f"CloudTest successful for {tenant.display_name} ({tenant.db_key})")
    return text_response(quote('Cloud test OK'))
