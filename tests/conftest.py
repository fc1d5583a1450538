from types import SimpleNamespace
import pytest
from config import Config
from dairylink import create_app, db
from dairylink.models.farmer import Farmer
from dairylink.models.machine import Machine
from dairylink.models.society import Society
from dairylink.models.tenant import Tenant, tenant_scope

DB_KEY = 'RAV1234'


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    TENANT_SQLITE_DIR = ''
    LOG_DEVICE_REQUESTS = False
    LOG_LEVEL = 'WARNING'
    DEVICE_TIMEZONE = 'Asia/Kolkata'
    CORRECTION_HISTORY_LIMIT = 5
    ROSTER_PAGE_SIZE = 5


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def tenant(app):
    """Tenant with a provisioned (attached in-memory) schema"""
    return Tenant.create_tenant('Ravi Kumar', email='ravi@example.com', db_key=DB_KEY)


@pytest.fixture
def tenant_info(tenant):
    return tenant.to_info()


@pytest.fixture
def ctx(tenant_info):
    """Tenant transaction for model-level tests"""
    with tenant_scope(tenant_info) as ctx:
        yield ctx


@pytest.fixture
def seeded(tenant_info):
    """Two societies, a few machines and seven farmers

    Society S-101 owns machines m102 (active), 00001 (active) and m7
    (suspended). Farmers 001-007 belong to S-101, all on machine m102.
    """
    with tenant_scope(tenant_info) as ctx:
        society_id = Society.create(ctx, 'S-101', 'Anand Milk Society')
        other_society_id = Society.create(ctx, '333', 'Kheda Dairy')

        machine_id = Machine.create(ctx, society_id, 'm102', 'LSE-SVWTBQ-12AH')
        numeric_machine_id = Machine.create(ctx, society_id, '00001', 'ECOD')
        suspended_machine_id = Machine.create(ctx, society_id, 'm7', 'LSE-SVWTBQ-12AH', status='inactive')
        other_machine_id = Machine.create(ctx, other_society_id, 'm102', 'ECOD')

        for number in range(1, 8):
            Farmer.create(
                ctx,
                society_id,
                f'{number:03d}',
                f'Farmer {number}',
                rf_id=f'RF{number:04d}',
                phone=f'98765000{number:02d}',
                sms_enabled='ON' if number % 2 else 'OFF',
                bonus=number + 0.5,
                machine_id=machine_id
            )
        Farmer.create(ctx, society_id, '099', 'Retired Farmer', machine_id=machine_id, status='inactive')
        Farmer.create(ctx, other_society_id, '001', 'Other Society Farmer', machine_id=other_machine_id)

    return SimpleNamespace(
        db_key=DB_KEY,
        society_id=society_id,
        other_society_id=other_society_id,
        machine_id=machine_id,
        numeric_machine_id=numeric_machine_id,
        suspended_machine_id=suspended_machine_id,
        other_machine_id=other_machine_id,
    )
