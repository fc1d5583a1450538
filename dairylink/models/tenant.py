import logging
import os
import random
import re
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional
from flask import current_app
from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.schema import CreateSchema
from dairylink import db
from dairylink.errors import TenantNotFound
from dairylink.models.schema import TENANT_SCHEMA, tenant_metadata
from dairylink.utils.clock import local_now

logger = logging.getLogger(__name__)

DB_KEY_MAX_ATTEMPTS = 10


def schema_name_for(full_name, db_key):
    """Derive the tenant schema name from the display name and tenant key

    Args:
        full_name: Organization admin display name
        db_key: Tenant key (any case)

    Returns:
        ``<alphanumeric lowercased name>_<lowercased key>``
    """
    clean_name = re.sub(r'[^a-zA-Z0-9]', '', full_name or '').lower()
    return f"{clean_name}_{db_key.lower()}"


@dataclass(frozen=True)
class TenantInfo:
    """Resolved tenant metadata for one request"""

    tenant_id: int
    db_key: str
    display_name: str
    schema_name: str


@dataclass
class TenantContext:
    """Tenant schema plus the connection every tenant query must run on.

    The connection carries the schema translation for the ``tenant``
    placeholder, so tables from ``dairylink.models.schema`` only resolve to
    this tenant's schema when executed through ``ctx.connection``.
    """

    schema_name: str
    connection: Connection
    tenant: Optional[TenantInfo] = None

    def execute(self, statement, parameters=None):
        return self.connection.execute(statement, parameters)

    def __repr__(self) -> str:
        return f"TenantContext(schema={self.schema_name})"


class Tenant(db.Model):
    """Organization admin owning one tenant schema (master table)"""

    __tablename__ = 'tenants'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True)
    db_key = db.Column(db.String(20), unique=True, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='active')
    created_at = db.Column(db.DateTime, nullable=False, default=local_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=local_now, onupdate=local_now)

    @property
    def schema_name(self):
        return schema_name_for(self.full_name, self.db_key)

    def to_info(self):
        return TenantInfo(
            tenant_id=self.id,
            db_key=self.db_key,
            display_name=self.full_name,
            schema_name=self.schema_name
        )

    @staticmethod
    def find_by_db_key(db_key):
        """Find a tenant by key (case-insensitive), or None"""
        if not db_key:
            return None
        return Tenant.query.filter_by(db_key=db_key.strip().upper()).first()

    @staticmethod
    def resolve(db_key):
        """Resolve a tenant key to its schema and metadata

        Args:
            db_key: Tenant key taken from the request path

        Returns:
            TenantInfo for the tenant

        Raises:
            TenantNotFound: the key is empty, malformed or unknown. Callers
                get the same error in every case.
        """
        normalized = (db_key or '').strip().upper()
        if len(normalized) < 2:
            raise TenantNotFound('Invalid DB Key', db_key=db_key)

        tenant = Tenant.find_by_db_key(normalized)
        if tenant is None:
            raise TenantNotFound('Invalid DB Key', db_key=db_key)

        return tenant.to_info()

    @staticmethod
    def generate_db_key(full_name):
        """Generate a candidate key: first three letters of the name plus four digits"""
        clean_name = re.sub(r'[^a-zA-Z]', '', full_name or '').upper()
        prefix = clean_name[:3].ljust(3, 'X')
        return f"{prefix}{random.randint(1000, 9999)}"

    @staticmethod
    def generate_unique_db_key(full_name, max_attempts=DB_KEY_MAX_ATTEMPTS):
        """Generate a key not yet used by any tenant

        Raises:
            RuntimeError: no free key was found within max_attempts
        """
        for _ in range(max_attempts):
            db_key = Tenant.generate_db_key(full_name)
            if Tenant.find_by_db_key(db_key) is None:
                return db_key
        raise RuntimeError(f"Failed to generate a unique DB key for '{full_name}' after {max_attempts} attempts")

    @staticmethod
    def create_tenant(full_name, email=None, db_key=None):
        """Create a tenant row and provision its schema

        Args:
            full_name: Organization admin display name
            email: Optional contact email
            db_key: Explicit key to use, generated when omitted

        Returns:
            The new Tenant
        """
        db_key = (db_key or Tenant.generate_unique_db_key(full_name)).upper()
        tenant = Tenant(full_name=full_name, email=email, db_key=db_key)
        schema_name = tenant.schema_name
        db.session.add(tenant)
        db.session.commit()

        sqlite_dir = current_app.config.get('TENANT_SQLITE_DIR', '')
        with db.engine.connect() as connection:
            provision_tenant_schema(connection, schema_name, sqlite_dir)
            connection.commit()

        logger.info(f"Tenant created: {full_name} ({db_key}) -> schema {schema_name}")
        return tenant


def _attached_sqlite_databases(connection):
    rows = connection.exec_driver_sql('PRAGMA database_list').fetchall()
    return {row[1] for row in rows}


def _attach_sqlite_schema(connection, schema_name, sqlite_dir=''):
    """Attach the SQLite database standing in for a tenant schema

    An empty sqlite_dir attaches an in-memory database, which only lives as
    long as the connection (enough for tests on a single static connection).
    """
    if schema_name in _attached_sqlite_databases(connection):
        return
    path = os.path.join(sqlite_dir, f"{schema_name}.db") if sqlite_dir else ':memory:'
    quoted = connection.dialect.identifier_preparer.quote_identifier(schema_name)
    connection.execute(text(f"ATTACH DATABASE :path AS {quoted}"), {'path': path})
    logger.debug(f"Attached SQLite database {path} as {schema_name}")


def provision_tenant_schema(connection, schema_name, sqlite_dir=''):
    """Create a tenant schema (if missing) and all tenant tables inside it"""
    if connection.dialect.name == 'sqlite':
        _attach_sqlite_schema(connection, schema_name, sqlite_dir)
    else:
        connection.execute(CreateSchema(schema_name, if_not_exists=True))

    scoped = connection.execution_options(schema_translate_map={TENANT_SCHEMA: schema_name})
    tenant_metadata.create_all(bind=scoped)
    logger.info(f"Provisioned tenant schema: {schema_name}")


@contextmanager
def tenant_scope(tenant_info):
    """Open a transaction bound to one tenant's schema

    Usage:
        with tenant_scope(Tenant.resolve(db_key)) as ctx:
            Society.find_by_candidates(ctx, reference)

    Commits when the block exits cleanly, rolls back when it raises.
    """
    with db.engine.begin() as connection:
        if connection.dialect.name == 'sqlite':
            sqlite_dir = current_app.config.get('TENANT_SQLITE_DIR', '')
            if sqlite_dir:
                _attach_sqlite_schema(connection, tenant_info.schema_name, sqlite_dir)
        scoped = connection.execution_options(
            schema_translate_map={TENANT_SCHEMA: tenant_info.schema_name}
        )
        yield TenantContext(
            schema_name=tenant_info.schema_name,
            connection=scoped,
            tenant=tenant_info
        )
