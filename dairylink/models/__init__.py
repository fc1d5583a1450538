import logging
from sqlalchemy.exc import SQLAlchemyError
from dairylink import db
from .tenant import Tenant

logger = logging.getLogger(__name__)


def init_db():
    """Initialize master database tables (tenants only)

    Note: Tenant schemas (societies, machines, farmers, corrections, rate
    charts) are created when a tenant is provisioned via
    Tenant.create_tenant() / provision_tenant_schema()
    """
    try:
        db.create_all()
        logger.info("Master database initialized successfully")
    except SQLAlchemyError as e:
        logger.error(f"Error initializing master database tables: {e}")
        # Don't raise - allow app to start so /health can report the failure
