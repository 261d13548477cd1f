import os, sys, pytest
# Ensure the backend directory is on path so 'repairdesk' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from repairdesk import create_app, get_db
from repairdesk.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import repairdesk.models.client  # noqa: F401
import repairdesk.models.ticket  # noqa: F401
import repairdesk.models.parts_order  # noqa: F401
import repairdesk.models.reminder  # noqa: F401
import repairdesk.models.time_log  # noqa: F401
import repairdesk.models.billing  # noqa: F401
from repairdesk.services import notifier

TEST_CONFIG = {
    'TESTING': True,
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
    'DEFAULT_TAX_RATE': None,
    'DEFAULT_HOURLY_RATE': None,
}


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = TEST_CONFIG['DATABASE_URL']
    app = create_app(TEST_CONFIG)
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture(autouse=True)
def clean_db(app_instance):
    """Every test starts from empty tables and no notifier subscribers."""
    yield
    session = get_db()
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.expunge_all()
    notifier.reset()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
