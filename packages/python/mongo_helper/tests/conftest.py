import mongomock
import pytest

import mongo_helper.client as client_module
from mongo_helper import Mongo


@pytest.fixture()
def mongo():
    return Mongo(mongomock.MongoClient(), timeout_seconds=10)


@pytest.fixture(autouse=True)
def _fresh_session():
    client_module._session = None
    yield
    client_module._session = None
