"""factory_boy factories for index rows and file entries."""

from datetime import timezone

import factory
from factory.alchemy import SQLAlchemyModelFactory

from storages_api.data_models.files import FileEntry
from storages_api.storage.index_models import IndexedFile
from storages_api.utils.filters import file_extension


class IndexedFileFactory(SQLAlchemyModelFactory):
    class Meta:
        model = IndexedFile
        sqlalchemy_session = None  # Set per-test in conftest
        sqlalchemy_session_persistence = "commit"

    storage = "ssd"
    name = factory.Sequence(lambda n: f"file_{n}.jpg")
    path = factory.LazyAttribute(lambda o: o.name)
    is_dir = False
    size = factory.Faker("pyint", min_value=0, max_value=50_000_000)
    mtime = factory.Faker("pyfloat", min_value=1_500_000_000, max_value=1_700_000_000)
    ext = factory.LazyAttribute(lambda o: None if o.is_dir else file_extension(o.name) or None)
    item_count = 0


class FileEntryFactory(factory.Factory):
    class Meta:
        model = FileEntry

    name = factory.Sequence(lambda n: f"photo_{n}.jpg")
    path = factory.LazyAttribute(lambda o: o.name)
    size = factory.Faker("pyint", min_value=0, max_value=50_000_000)
    mode = "-rw-r--r--"
    modified_at = factory.Faker(
        "date_time_between", start_date="-2y", end_date="-30d", tzinfo=timezone.utc
    )
    is_dir = False
    extension = factory.LazyAttribute(lambda o: "" if o.is_dir else file_extension(o.name))
    item_count = 0
