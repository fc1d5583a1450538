"""Tenant schema tables

Every organization gets its own schema holding these tables. They are bound
to the placeholder schema ``tenant`` and only become reachable through a
connection carrying ``schema_translate_map={TENANT_SCHEMA: <schema name>}``,
which is what TenantContext provides.
"""
from sqlalchemy import (
    Column, DateTime, ForeignKey, Integer, MetaData, Numeric, String, Table,
    Text, UniqueConstraint
)
from dairylink.utils.clock import local_now

TENANT_SCHEMA = 'tenant'

CORRECTION_FIELDS = ('fat', 'snf', 'clr', 'temp', 'water', 'protein')

tenant_metadata = MetaData()


def _correction_columns():
    columns = []
    for channel in (1, 2, 3):
        for field in CORRECTION_FIELDS:
            columns.append(
                Column(f'channel{channel}_{field}', Numeric(5, 2), nullable=False, default=0)
            )
    return columns


societies = Table(
    'societies', tenant_metadata,
    Column('id', Integer, primary_key=True),
    Column('name', String(255), nullable=False),
    Column('society_id', String(50), nullable=False, unique=True),
    Column('location', String(255)),
    Column('president_name', String(255)),
    Column('contact_phone', String(20)),
    Column('status', String(20), nullable=False, default='active'),
    Column('created_at', DateTime, nullable=False, default=local_now),
    Column('updated_at', DateTime, nullable=False, default=local_now, onupdate=local_now),
    schema=TENANT_SCHEMA,
)

machines = Table(
    'machines', tenant_metadata,
    Column('id', Integer, primary_key=True),
    Column('machine_id', String(50), nullable=False),
    Column('machine_type', String(100), nullable=False),
    Column('society_id', Integer, ForeignKey(f'{TENANT_SCHEMA}.societies.id', ondelete='SET NULL')),
    Column('location', String(255)),
    Column('status', String(20), nullable=False, default='active'),
    Column('notes', Text),
    Column('user_password', String(255)),
    Column('supervisor_password', String(255)),
    # 0 = not set, 1 = set and deliverable to the device
    Column('statusU', Integer, nullable=False, default=0),
    Column('statusS', Integer, nullable=False, default=0),
    Column('created_at', DateTime, nullable=False, default=local_now),
    Column('updated_at', DateTime, nullable=False, default=local_now, onupdate=local_now),
    UniqueConstraint('machine_id', 'society_id', name='unique_machine_per_society'),
    schema=TENANT_SCHEMA,
)

farmers = Table(
    'farmers', tenant_metadata,
    Column('id', Integer, primary_key=True),
    Column('name', String(255), nullable=False),
    Column('farmer_id', String(50), nullable=False),
    Column('rf_id', String(50), unique=True),
    Column('phone', String(20)),
    Column('sms_enabled', String(3), nullable=False, default='OFF'),
    Column('bonus', Numeric(10, 2), default=0),
    Column('status', String(20), nullable=False, default='active'),
    Column('society_id', Integer, ForeignKey(f'{TENANT_SCHEMA}.societies.id', ondelete='SET NULL')),
    Column('machine_id', Integer, ForeignKey(f'{TENANT_SCHEMA}.machines.id', ondelete='SET NULL')),
    Column('created_at', DateTime, nullable=False, default=local_now),
    Column('updated_at', DateTime, nullable=False, default=local_now, onupdate=local_now),
    UniqueConstraint('farmer_id', 'society_id', name='unique_farmer_per_society'),
    schema=TENANT_SCHEMA,
)

machine_corrections = Table(
    'machine_corrections', tenant_metadata,
    Column('id', Integer, primary_key=True),
    Column('machine_id', Integer, nullable=False, index=True),
    Column('society_id', Integer, nullable=False),
    Column('machine_type', String(100)),
    *_correction_columns(),
    # 1 = active/current, 0 = applied or superseded
    Column('status', Integer, nullable=False, default=1),
    Column('created_at', DateTime, nullable=False, default=local_now),
    Column('updated_at', DateTime, nullable=False, default=local_now, onupdate=local_now),
    schema=TENANT_SCHEMA,
)

rate_charts = Table(
    'rate_charts', tenant_metadata,
    Column('id', Integer, primary_key=True),
    Column('shared_chart_id', Integer, nullable=True),
    Column('society_id', Integer, ForeignKey(f'{TENANT_SCHEMA}.societies.id', ondelete='CASCADE'), nullable=False),
    Column('channel', String(3), nullable=False),
    Column('uploaded_at', DateTime, nullable=False, default=local_now),
    Column('uploaded_by', String(255), nullable=False),
    Column('file_name', String(255), nullable=False),
    Column('record_count', Integer, nullable=False, default=0),
    # 1 = assigned and downloadable
    Column('status', Integer, nullable=False, default=1),
    UniqueConstraint('society_id', 'channel', name='unique_society_channel'),
    schema=TENANT_SCHEMA,
)

rate_chart_data = Table(
    'rate_chart_data', tenant_metadata,
    Column('id', Integer, primary_key=True),
    Column('rate_chart_id', Integer, ForeignKey(f'{TENANT_SCHEMA}.rate_charts.id', ondelete='CASCADE'), nullable=False, index=True),
    Column('clr', Numeric(5, 2), nullable=False),
    Column('fat', Numeric(5, 2), nullable=False),
    Column('snf', Numeric(5, 2), nullable=False),
    Column('rate', Numeric(10, 2), nullable=False),
    Column('created_at', DateTime, nullable=False, default=local_now),
    schema=TENANT_SCHEMA,
)

rate_chart_download_history = Table(
    'rate_chart_download_history', tenant_metadata,
    Column('id', Integer, primary_key=True),
    Column('rate_chart_id', Integer, ForeignKey(f'{TENANT_SCHEMA}.rate_charts.id', ondelete='CASCADE'), nullable=False),
    Column('machine_id', Integer, ForeignKey(f'{TENANT_SCHEMA}.machines.id', ondelete='CASCADE'), nullable=False),
    Column('society_id', Integer, ForeignKey(f'{TENANT_SCHEMA}.societies.id', ondelete='CASCADE'), nullable=False),
    Column('channel', String(3), nullable=False),
    Column('downloaded_at', DateTime, nullable=False, default=local_now),
    UniqueConstraint('machine_id', 'rate_chart_id', name='unique_machine_chart'),
    schema=TENANT_SCHEMA,
)
