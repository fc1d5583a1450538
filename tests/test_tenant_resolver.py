import re
import pytest
from sqlalchemy import select
from dairylink.errors import TenantNotFound
from dairylink.models import tenant as tenant_module
from dairylink.models.schema import societies
from dairylink.models.society import Society
from dairylink.models.tenant import Tenant, schema_name_for, tenant_scope

DB_KEY = 'RAV1234'


def test_schema_name_for():
    assert schema_name_for('Ravi Kumar', 'RAV1234') == 'ravikumar_rav1234'
    assert schema_name_for("O'Brien & Sons Dairy", 'OBR0042') == 'obriensonsdairy_obr0042'


def test_resolve_is_case_insensitive(tenant):
    info = Tenant.resolve('rav1234')

    assert info.db_key == DB_KEY
    assert info.display_name == 'Ravi Kumar'
    assert info.schema_name == 'ravikumar_rav1234'


@pytest.mark.parametrize('db_key', ['', 'R', 'XYZ9999', None])
def test_resolve_rejects_bad_keys(tenant, db_key):
    with pytest.raises(TenantNotFound):
        Tenant.resolve(db_key)


def test_generate_db_key_format():
    assert re.fullmatch(r'RAV\d{4}', Tenant.generate_db_key('Ravi Kumar'))
    assert re.fullmatch(r'ALX\d{4}', Tenant.generate_db_key('Al'))
    assert re.fullmatch(r'XXX\d{4}', Tenant.generate_db_key('42'))


def test_generate_unique_db_key_skips_taken_keys(tenant, monkeypatch):
    candidates = iter([DB_KEY, 'RAV5555'])
    monkeypatch.setattr(Tenant, 'generate_db_key', staticmethod(lambda full_name: next(candidates)))

    assert Tenant.generate_unique_db_key('Ravi Kumar') == 'RAV5555'


def test_generate_unique_db_key_gives_up(tenant, monkeypatch):
    monkeypatch.setattr(Tenant, 'generate_db_key', staticmethod(lambda full_name: DB_KEY))

    with pytest.raises(RuntimeError):
        Tenant.generate_unique_db_key('Ravi Kumar', max_attempts=3)


def test_create_tenant_generates_key(app):
    created = Tenant.create_tenant('Meera Patel')

    assert re.fullmatch(r'MEE\d{4}', created.db_key)
    assert Tenant.resolve(created.db_key.lower()).schema_name == f'meerapatel_{created.db_key.lower()}'


def test_tenants_are_isolated(tenant_info, app):
    other = Tenant.create_tenant('Meera Patel', db_key='MEE0001').to_info()

    with tenant_scope(tenant_info) as ctx:
        Society.create(ctx, 'S-101', 'Anand Milk Society')

    with tenant_scope(other) as ctx:
        assert ctx.execute(select(societies)).fetchall() == []

    with tenant_scope(tenant_info) as ctx:
        assert len(ctx.execute(select(societies)).fetchall()) == 1


def test_scope_rolls_back_on_error(tenant_info):
    with pytest.raises(ValueError):
        with tenant_scope(tenant_info) as ctx:
            Society.create(ctx, 'S-101', 'Anand Milk Society')
            raise ValueError('boom')

    with tenant_scope(tenant_info) as ctx:
        assert ctx.execute(select(societies)).fetchall() == []


def test_provision_attaches_sqlite_file(app, tmp_path):
    app.config['TENANT_SQLITE_DIR'] = str(tmp_path)
    created = Tenant.create_tenant('Meera Patel', db_key='MEE0001')

    assert (tmp_path / f'{created.schema_name}.db').exists()

    with tenant_scope(created.to_info()) as ctx:
        assert 'meerapatel_mee0001' in tenant_module._attached_sqlite_databases(ctx.connection)
